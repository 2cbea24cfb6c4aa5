"""Core building blocks shared by the Peteat client layers.

Components:
- errors: exception hierarchy (NotAuthenticated, TransportError, TokenExpired, ...)
- CredentialStore: device-local token and user storage with auth listeners
"""

from .errors import (
    PeteatError,
    NotAuthenticated,
    TransportError,
    ConnectionTimeout,
    TokenExpired,
    NetworkUnreachable,
    ApiError
)
from .credential_store import AuthSession, CredentialStore

__all__ = [
    'PeteatError',
    'NotAuthenticated',
    'TransportError',
    'ConnectionTimeout',
    'TokenExpired',
    'NetworkUnreachable',
    'ApiError',
    'AuthSession',
    'CredentialStore'
]
