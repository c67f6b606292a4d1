"""Typed failures raised by the auth flow, the request gateway and the sync engine.

Every error derives from RecordOSError (itself a RuntimeError), so callers that
only care about "something went wrong talking to Spotify" can catch one type.
"""

from typing import Optional


class RecordOSError(RuntimeError):
    """Base class for all recordos failures."""

    default_message = "Spotify request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class MissingVerifier(RecordOSError):
    default_message = "No code verifier found. Please try logging in again."


class TokenExchangeFailed(RecordOSError):
    default_message = "Failed to exchange code for tokens"

    def __init__(self, description: Optional[str] = None, *, status: Optional[int] = None):
        super().__init__(description)
        self.description = self.message
        self.status = status


class AuthorizationDenied(RecordOSError):
    default_message = "Spotify authorization was denied"


class NoRefreshToken(RecordOSError):
    default_message = "No refresh token available"


class SessionExpired(RecordOSError):
    default_message = "Session expired. Please log in again."


class NotAuthenticated(RecordOSError):
    default_message = "Not authenticated"


class NetworkError(RecordOSError):
    default_message = "Spotify could not be reached"


class ApiError(RecordOSError):
    """Non-2xx response from the Web API."""

    def __init__(self, status: int, message: Optional[str] = None, *, retry_after: Optional[float] = None):
        super().__init__(message or f"API error: {status}")
        self.status = int(status)
        self.retry_after = retry_after

    def __str__(self) -> str:
        return f"Spotify API error {self.status}: {self.message}"


class AccessDenied(ApiError):
    """403 that survived one refresh-and-retry (missing scope, revoked consent)."""

    def __init__(self, message: Optional[str] = None):
        super().__init__(403, message or "Access denied")
