"""Error taxonomy shared by every layer.

Every fatal error is an :class:`AfontError` carrying a machine-readable
``code``, a short ``message``, a ``recoverable`` hint (worth retrying later)
and optional structured ``details``. Soft failures are not raised at all:
they are appended to the ``warnings`` list returned alongside results.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    NETWORK_ERROR = "NETWORK_ERROR"
    HTTP_STATUS = "HTTP_STATUS"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
    ENTRY_NOT_FOUND = "ENTRY_NOT_FOUND"
    INDEX_ENGINE_UNAVAILABLE = "INDEX_ENGINE_UNAVAILABLE"
    INDEX_WRITE_FAILED = "INDEX_WRITE_FAILED"
    INVALID_INPUT = "INVALID_INPUT"
    MISSING_TOKEN = "MISSING_TOKEN"
    NO_PARTITIONS = "NO_PARTITIONS"
    UNCACHED_SEARCH_REFUSED = "UNCACHED_SEARCH_REFUSED"


class AfontError(Exception):
    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        recoverable: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.recoverable = recoverable
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Error envelope handed to the presentation layer."""
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "recoverable": self.recoverable,
                "details": self.details,
            }
        }


class NetworkError(AfontError):
    """Connection failure or timeout, after the retry budget was spent."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorCode.NETWORK_ERROR, message, recoverable=True, details=details)


class HttpStatusError(AfontError):
    def __init__(self, message: str, *, status: int, body: Any = None, retryable: bool) -> None:
        super().__init__(
            ErrorCode.HTTP_STATUS,
            message,
            recoverable=retryable,
            details={"status": status, "body": body},
        )
        self.status = status
        self.body = body


class EntryNotFound(AfontError):
    def __init__(self, entry_id: str) -> None:
        super().__init__(
            ErrorCode.ENTRY_NOT_FOUND,
            f"Family not found: {entry_id}",
            details={"entry_id": entry_id},
        )
        self.entry_id = entry_id


class IndexEngineUnavailable(AfontError):
    def __init__(
        self, message: str = "SQLite FTS5 is not available; local index is disabled."
    ) -> None:
        super().__init__(ErrorCode.INDEX_ENGINE_UNAVAILABLE, message)


class InvalidInputError(AfontError):
    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.INVALID_INPUT, message)
