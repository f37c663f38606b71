"""Error taxonomy shared by every component.

Not-found is never an error: lookups return ``None``. ``PlaneAgeError`` is
reserved for failures the caller must tell apart from an empty result.
Messages are safe to show to end users and never carry filesystem paths.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    INVALID_INPUT = "INVALID_INPUT"
    NOT_CONFIGURED = "NOT_CONFIGURED"
    REGISTRY_READ_FAILED = "REGISTRY_READ_FAILED"
    DOWNLOAD_FAILED = "DOWNLOAD_FAILED"
    TOO_MANY_REDIRECTS = "TOO_MANY_REDIRECTS"
    ARCHIVE_ENTRY_MISSING = "ARCHIVE_ENTRY_MISSING"
    SWAP_FAILED = "SWAP_FAILED"
    MIRROR_FAILED = "MIRROR_FAILED"
    MANIFEST_UNAVAILABLE = "MANIFEST_UNAVAILABLE"


class PlaneAgeError(Exception):
    def __init__(self, code: ErrorCode, message: str, recoverable: bool) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.recoverable = recoverable

    def to_dict(self) -> dict[str, object]:
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "recoverable": self.recoverable,
            }
        }
