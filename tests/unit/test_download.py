"""Unit tests for planeage.download."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from pathlib import Path

import httpx
import pytest
import respx

from planeage.download import Downloader, build_http_client
from planeage.errors import ErrorCode, PlaneAgeError


class BrokenStream(httpx.AsyncByteStream):
    """Yields one chunk, then drops the connection."""

    async def __aiter__(self) -> AsyncIterator[bytes]:
        yield b"PK\x03\x04partial"
        raise httpx.ReadError("connection reset")


# ---------------------------------------------------------------------------
# build_http_client
# ---------------------------------------------------------------------------


class TestBuildHttpClient:
    def test_client_configuration(self) -> None:
        client = build_http_client()
        assert isinstance(client, httpx.AsyncClient)
        # Redirects are followed by Downloader, never by the client
        assert client.follow_redirects is False
        assert client.headers["user-agent"].startswith("planeage/")


# ---------------------------------------------------------------------------
# Downloader
# ---------------------------------------------------------------------------


class TestDownloader:
    async def test_successful_download(self, tmp_path: Path) -> None:
        dest = tmp_path / "archive.zip"
        with respx.mock:
            respx.get("https://example.com/data.zip").mock(
                return_value=httpx.Response(200, content=b"zip-bytes")
            )
            async with httpx.AsyncClient() as client:
                written = await Downloader(client).download("https://example.com/data.zip", dest)
        assert written == len(b"zip-bytes")
        assert dest.read_bytes() == b"zip-bytes"

    async def test_redirect_followed(self, tmp_path: Path) -> None:
        dest = tmp_path / "archive.zip"
        with respx.mock:
            respx.get("https://example.com/old").mock(
                return_value=httpx.Response(302, headers={"location": "https://cdn.example.com/new"})
            )
            respx.get("https://cdn.example.com/new").mock(
                return_value=httpx.Response(200, content=b"moved")
            )
            async with httpx.AsyncClient() as client:
                await Downloader(client).download("https://example.com/old", dest)
        assert dest.read_bytes() == b"moved"

    async def test_relative_redirect_resolved(self, tmp_path: Path) -> None:
        dest = tmp_path / "archive.zip"
        with respx.mock:
            respx.get("https://example.com/a/old").mock(
                return_value=httpx.Response(301, headers={"location": "/b/new.zip"})
            )
            respx.get("https://example.com/b/new.zip").mock(
                return_value=httpx.Response(200, content=b"relative")
            )
            async with httpx.AsyncClient() as client:
                await Downloader(client).download("https://example.com/a/old", dest)
        assert dest.read_bytes() == b"relative"

    async def test_exactly_max_redirects_is_allowed(self, tmp_path: Path) -> None:
        dest = tmp_path / "archive.zip"
        with respx.mock:
            for i in range(2):
                respx.get(f"https://example.com/r{i}").mock(
                    return_value=httpx.Response(
                        301, headers={"location": f"https://example.com/r{i + 1}"}
                    )
                )
            respx.get("https://example.com/r2").mock(return_value=httpx.Response(200, content=b"x"))
            async with httpx.AsyncClient() as client:
                await Downloader(client, max_redirects=2).download("https://example.com/r0", dest)
        assert dest.read_bytes() == b"x"

    async def test_too_many_redirects(self, tmp_path: Path) -> None:
        dest = tmp_path / "archive.zip"
        with respx.mock:
            for i in range(3):
                respx.get(f"https://example.com/r{i}").mock(
                    return_value=httpx.Response(
                        301, headers={"location": f"https://example.com/r{i + 1}"}
                    )
                )
            respx.get("https://example.com/r3").mock(return_value=httpx.Response(200, content=b"x"))
            async with httpx.AsyncClient() as client:
                downloader = Downloader(client, max_redirects=2)
                with pytest.raises(PlaneAgeError) as exc_info:
                    await downloader.download("https://example.com/r0", dest)
        assert exc_info.value.code == ErrorCode.TOO_MANY_REDIRECTS
        assert exc_info.value.recoverable is False
        assert not dest.exists()

    async def test_404_raises_error(self, tmp_path: Path) -> None:
        dest = tmp_path / "archive.zip"
        with respx.mock:
            respx.get("https://example.com/missing").mock(return_value=httpx.Response(404))
            async with httpx.AsyncClient() as client:
                with pytest.raises(PlaneAgeError) as exc_info:
                    await Downloader(client).download("https://example.com/missing", dest)
        assert exc_info.value.code == ErrorCode.DOWNLOAD_FAILED
        assert exc_info.value.recoverable is False
        assert "404" in exc_info.value.message
        assert not dest.exists()

    async def test_500_is_recoverable(self, tmp_path: Path) -> None:
        dest = tmp_path / "archive.zip"
        with respx.mock:
            respx.get("https://example.com/error").mock(return_value=httpx.Response(503))
            async with httpx.AsyncClient() as client:
                with pytest.raises(PlaneAgeError) as exc_info:
                    await Downloader(client).download("https://example.com/error", dest)
        assert exc_info.value.code == ErrorCode.DOWNLOAD_FAILED
        assert exc_info.value.recoverable is True

    async def test_network_error_raises_error(self, tmp_path: Path) -> None:
        dest = tmp_path / "archive.zip"
        with respx.mock:
            respx.get("https://example.com/down").mock(
                side_effect=httpx.ConnectError("Connection refused")
            )
            async with httpx.AsyncClient() as client:
                with pytest.raises(PlaneAgeError) as exc_info:
                    await Downloader(client).download("https://example.com/down", dest)
        assert exc_info.value.code == ErrorCode.DOWNLOAD_FAILED
        assert exc_info.value.recoverable is True

    async def test_interrupted_transfer_removes_partial_file(self, tmp_path: Path) -> None:
        dest = tmp_path / "archive.zip"
        with respx.mock:
            respx.get("https://example.com/data.zip").mock(
                return_value=httpx.Response(200, stream=BrokenStream())
            )
            async with httpx.AsyncClient() as client:
                with pytest.raises(PlaneAgeError) as exc_info:
                    await Downloader(client).download("https://example.com/data.zip", dest)
        assert exc_info.value.code == ErrorCode.DOWNLOAD_FAILED
        assert not dest.exists()

    async def test_deadline_covers_whole_transfer(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        dest = tmp_path / "archive.zip"

        async def slow_follow(self: Downloader, url: str, path: Path) -> int:
            path.write_bytes(b"partial")
            await asyncio.sleep(5)
            return 0

        monkeypatch.setattr(Downloader, "_follow", slow_follow)
        async with httpx.AsyncClient() as client:
            downloader = Downloader(client, timeout_seconds=0.05)
            with pytest.raises(PlaneAgeError) as exc_info:
                await downloader.download("https://example.com/data.zip", dest)
        assert exc_info.value.code == ErrorCode.DOWNLOAD_FAILED
        assert "timed out" in exc_info.value.message
        assert not dest.exists()
