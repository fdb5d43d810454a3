"""
Error taxonomy for the Outlook sync pipeline.

Every error carries the HTTP status the API should answer with and the
stage that failed, so routes can turn it into ``{"error", "stage"}``.
"""

from __future__ import annotations

from typing import Optional

_RECONNECT = "Please reconnect your Microsoft account."


class SyncError(Exception):
    status_code: int = 500
    stage: str = "sync"
    default_message: str = "Outlook sync failed"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_response(self) -> dict:
        return {"error": self.message, "stage": self.stage}


class NotConnected(SyncError):
    status_code = 401
    stage = "connection"
    default_message = f"Microsoft account not connected. {_RECONNECT}"


class RateLimited(SyncError):
    status_code = 429
    stage = "token_refresh"
    default_message = "Token refresh rate limit exceeded"


class RefreshTokenExpired(SyncError):
    status_code = 401
    stage = "token_refresh"
    default_message = f"Refresh token expired. {_RECONNECT}"


class RefreshFailed(SyncError):
    status_code = 502
    stage = "token_refresh"

    def __init__(self, last_error: Optional[BaseException] = None, attempts: int = 0) -> None:
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(
            f"Token refresh failed after {attempts} attempts: {last_error or 'unknown error'}"
        )


class AuthenticationExpired(SyncError):
    status_code = 401
    stage = "calendar_fetch"
    default_message = f"Microsoft account authentication expired. {_RECONNECT}"


class FetchFailed(SyncError):
    status_code = 502
    stage = "calendar_fetch"

    def __init__(self, status: Optional[int] = None, body: str = "") -> None:
        self.status = status
        self.body = body
        if status is None:
            message = f"Failed to fetch meetings from Outlook: {body}"
        else:
            message = f"Failed to fetch meetings from Outlook (HTTP {status})"
        super().__init__(message)
