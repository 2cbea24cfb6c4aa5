"""Exception hierarchy shared by the REST client and the realtime layer."""
from typing import Any, Optional


class PeteatError(Exception):
    """Base class for every error raised by the client."""


class NotAuthenticated(PeteatError):
    """No credential is available, or the session could not be refreshed."""


class TransportError(PeteatError):
    """The realtime transport failed to connect or was lost."""


class ConnectionTimeout(TransportError):
    """Waiting for the realtime transport to connect took too long."""


class TokenExpired(PeteatError):
    """The API rejected the access token as expired."""


class NetworkUnreachable(PeteatError):
    """The API host and every fallback host were unreachable."""

    def __init__(self, message: str, original: Optional[BaseException] = None):
        super().__init__(message)
        self.original = original


class ApiError(PeteatError):
    """The API answered with a non-success status."""

    def __init__(self, status: int, message: str, data: Any = None):
        super().__init__(f"{status}: {message}")
        self.status = status
        self.message = message
        self.data = data
