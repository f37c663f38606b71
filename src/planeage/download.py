"""Streaming HTTPS download for the registry archive.

Redirects are followed by hand so the hop count can be bounded; the client is
built with ``follow_redirects=False``. The whole transfer, including every
hop, runs under a single deadline. A failed or timed-out transfer leaves no
partial file behind.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import httpx
import structlog

from planeage import __version__
from planeage.errors import ErrorCode, PlaneAgeError

log = structlog.get_logger()

_CHUNK_SIZE = 1024 * 1024


def build_http_client() -> httpx.AsyncClient:
    """Shared client for every outbound call. Redirects are never followed implicitly."""
    return httpx.AsyncClient(
        follow_redirects=False,
        timeout=httpx.Timeout(30.0, connect=10.0),
        headers={"User-Agent": f"planeage/{__version__}"},
    )


class Downloader:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        max_redirects: int = 5,
        timeout_seconds: float = 120.0,
    ) -> None:
        self._client = client
        self.max_redirects = max_redirects
        self.timeout_seconds = timeout_seconds

    async def download(self, url: str, dest: Path) -> int:
        """Stream ``url`` into ``dest`` and return the number of bytes written."""
        try:
            async with asyncio.timeout(self.timeout_seconds):
                return await self._follow(url, dest)
        except TimeoutError as exc:
            dest.unlink(missing_ok=True)
            raise PlaneAgeError(
                code=ErrorCode.DOWNLOAD_FAILED,
                message=f"Download timed out after {self.timeout_seconds:g}s",
                recoverable=True,
            ) from exc
        except httpx.HTTPError as exc:
            dest.unlink(missing_ok=True)
            raise PlaneAgeError(
                code=ErrorCode.DOWNLOAD_FAILED,
                message=f"Download failed: {type(exc).__name__}",
                recoverable=True,
            ) from exc
        except BaseException:
            dest.unlink(missing_ok=True)
            raise

    async def _follow(self, url: str, dest: Path) -> int:
        current = httpx.URL(url)
        for _ in range(self.max_redirects + 1):
            async with self._client.stream("GET", current) as response:
                if response.is_redirect:
                    target = current.join(response.headers["location"])
                    log.debug("download_redirect", status=response.status_code, location=str(target))
                    current = target
                    continue

                if response.status_code != 200:
                    raise PlaneAgeError(
                        code=ErrorCode.DOWNLOAD_FAILED,
                        message=f"Download failed (HTTP {response.status_code})",
                        recoverable=response.status_code >= 500,
                    )

                written = 0
                with dest.open("wb") as fh:
                    async for chunk in response.aiter_bytes(_CHUNK_SIZE):
                        fh.write(chunk)
                        written += len(chunk)
                log.info("download_complete", url=str(current), bytes=written)
                return written

        raise PlaneAgeError(
            code=ErrorCode.TOO_MANY_REDIRECTS,
            message=f"Download failed (more than {self.max_redirects} redirects)",
            recoverable=False,
        )
