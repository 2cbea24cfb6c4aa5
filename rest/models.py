"""Request and response records passed along the REST interceptor chain."""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Union

import aiohttp

AUTH_HEADER = 'x-auth-token'
TOKEN_EXPIRED_MESSAGE = 'Token expired'

# Failures that mean "could not reach the host" rather than "host said no"
NETWORK_ERRORS = (aiohttp.ClientConnectionError, asyncio.TimeoutError)


@dataclass
class ApiRequest:
    method: str
    path: str
    json: Any = None
    params: Optional[Dict[str, Any]] = None
    # Either a body or a zero-argument callable building a fresh body per attempt
    data: Union[Any, Callable[[], Any], None] = None
    headers: Dict[str, str] = field(default_factory=dict)
    timeout: Optional[float] = None
    # Resolve ``path`` against the host root instead of the /api base
    root_relative: bool = False
    refresh_attempted: bool = False
    fallback_attempted: bool = False


@dataclass
class ApiResponse:
    status: int
    data: Any = None
    headers: Dict[str, str] = field(default_factory=dict)
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def token_expired(self) -> bool:
        return (self.status == 401 and isinstance(self.data, dict)
                and self.data.get('message') == TOKEN_EXPIRED_MESSAGE)


def error_message(data: Any, default: str) -> str:
    if isinstance(data, dict):
        for key in ('message', 'msg', 'error'):
            if isinstance(data.get(key), str):
                return data[key]
    if isinstance(data, str) and data:
        return data
    return default
