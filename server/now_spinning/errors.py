from __future__ import annotations

import uuid
from typing import Any, Dict, Optional


AUTH_DENIED = "AUTH_DENIED"
CONFIG_ERROR = "CONFIG_ERROR"
DISCOGS_ERROR = "DISCOGS_ERROR"
DISCOGS_NOT_CONNECTED = "DISCOGS_NOT_CONNECTED"
DISCOGS_RATE_LIMIT = "DISCOGS_RATE_LIMIT"
INTERNAL_ERROR = "INTERNAL_ERROR"
INVALID_QUERY = "INVALID_QUERY"
INVALID_RELEASE_ID = "INVALID_RELEASE_ID"
INVALID_STATE = "INVALID_STATE"
INVALID_TRACK_INDEX = "INVALID_TRACK_INDEX"
LASTFM_ERROR = "LASTFM_ERROR"
LASTFM_NOT_CONNECTED = "LASTFM_NOT_CONNECTED"
SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
UNAUTHORIZED = "UNAUTHORIZED"
VALIDATION_ERROR = "VALIDATION_ERROR"


class NowSpinningError(RuntimeError):
    """An error with a stable code that is surfaced to the caller as-is."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        status_code: int,
        details: Any = None,
        retry_after: Optional[str] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        self.retry_after = retry_after

    def headers(self) -> Dict[str, str]:
        if self.retry_after:
            return {"Retry-After": self.retry_after}
        return {}


def error_body(code: str, message: str, details: Any = None) -> Dict[str, Any]:
    error: Dict[str, Any] = {
        "code": code,
        "message": message,
        "requestId": str(uuid.uuid4()),
    }
    if details is not None:
        error["details"] = details
    return {"error": error}


def validation_error(message: str, details: Any = None) -> NowSpinningError:
    return NowSpinningError(VALIDATION_ERROR, message, status_code=400, details=details)


def session_not_found() -> NowSpinningError:
    # Sessions owned by someone else are reported exactly like missing ones.
    return NowSpinningError(SESSION_NOT_FOUND, "Session not found", status_code=404)


def lastfm_not_connected() -> NowSpinningError:
    return NowSpinningError(LASTFM_NOT_CONNECTED, "Last.fm is not connected", status_code=401)


def discogs_not_connected() -> NowSpinningError:
    return NowSpinningError(DISCOGS_NOT_CONNECTED, "Discogs is not connected", status_code=401)


def discogs_failure(
    status: int, message: str, retry_after: Optional[str] = None, detail: Optional[str] = None
) -> NowSpinningError:
    """Map an upstream Discogs status onto the caller-facing error.

    4xx means the request itself was wrong (400 to the caller, never retried),
    5xx means Discogs is unwell (502), and 429 keeps its retry hint. Discogs' own
    explanation of a 4xx, when it sent one, is appended to the message.
    """
    if status == 429:
        return NowSpinningError(
            DISCOGS_RATE_LIMIT,
            "Discogs rate limit reached. Please retry shortly.",
            status_code=429,
            retry_after=retry_after,
        )
    if 400 <= status < 500:
        text = f"{message} (Discogs returned {status})"
        if detail:
            text = f"{text}: {detail}"
        return NowSpinningError(DISCOGS_ERROR, text, status_code=400)
    return NowSpinningError(DISCOGS_ERROR, message, status_code=502)
