"""Interceptor stages for the REST request pipeline.

A stage is awaited as ``stage(request, call_next)`` and returns an
``ApiResponse``. ``call_next(request)`` runs the rest of the chain. The flags
on ``ApiRequest`` bound each recovery path to one retry per request.
"""
import asyncio
import logging
from typing import Awaitable, Callable

from core.errors import NetworkUnreachable, NotAuthenticated, TokenExpired
from .models import AUTH_HEADER, NETWORK_ERRORS, ApiRequest, ApiResponse

logger = logging.getLogger(__name__)

CallNext = Callable[[ApiRequest], Awaitable[ApiResponse]]

REFRESH_PATH = '/auth/refresh'
REFRESH_TIMEOUT = 10.0


class Stage:
    def __init__(self, client):
        self.client = client

    async def __call__(self, request: ApiRequest, call_next: CallNext) -> ApiResponse:
        raise NotImplementedError


class AuthHeaderStage(Stage):
    """Adds the ``x-auth-token`` header from the client's cached token."""

    async def __call__(self, request: ApiRequest, call_next: CallNext) -> ApiResponse:
        token = self.client.token
        if token:
            request.headers[AUTH_HEADER] = token
        return await call_next(request)


class TokenRefreshStage(Stage):
    """On a "Token expired" 401, refreshes the session once and retries the request once.

    A failed refresh clears the stored credentials and raises NotAuthenticated.
    """

    def __init__(self, client):
        super().__init__(client)
        self._lock = asyncio.Lock()

    async def __call__(self, request: ApiRequest, call_next: CallNext) -> ApiResponse:
        response = await call_next(request)
        if not response.token_expired or request.refresh_attempted:
            return response

        request.refresh_attempted = True
        expired_token = request.headers.get(AUTH_HEADER)
        logger.info(f"Access token expired on {request.method} {request.path}, refreshing")
        if await self.refresh(expired_token):
            return await call_next(request)

        logger.warning("Token refresh failed, clearing stored credentials")
        self.client.credentials.clear()
        raise NotAuthenticated("Session expired and could not be refreshed") from TokenExpired(
            response.data.get('message'))

    async def refresh(self, expired_token=None) -> bool:
        async with self._lock:
            current = self.client.credentials.get_token()
            if expired_token and current and current != expired_token:
                # Another request refreshed while this one waited
                return True
            return await self._exchange_refresh_token()

    async def _exchange_refresh_token(self) -> bool:
        refresh_token = self.client.credentials.get_refresh_token()
        if not refresh_token:
            logger.info("No refresh token stored")
            return False
        exchange = ApiRequest('POST', REFRESH_PATH, json={'refreshToken': refresh_token},
                              timeout=REFRESH_TIMEOUT, root_relative=True)
        try:
            response = await self.client.send(exchange)
        except NETWORK_ERRORS as e:
            logger.warning(f"Error refreshing token: {e!r}")
            return False
        if not response.ok or not isinstance(response.data, dict):
            logger.warning(f"Token refresh rejected with status {response.status}")
            return False
        access_token = response.data.get('accessToken')
        if not access_token:
            return False
        self.client.credentials.update_tokens(access_token, response.data.get('refreshToken'))
        logger.info("Access token refreshed")
        return True


class HostFallbackStage(Stage):
    """On a connection failure, probes fallback hosts in order and retries once on the first live one."""

    async def __call__(self, request: ApiRequest, call_next: CallNext) -> ApiResponse:
        try:
            return await call_next(request)
        except NETWORK_ERRORS as e:
            if request.fallback_attempted:
                raise NetworkUnreachable(
                    f"{request.method} {request.path} failed after host fallback: {e!r}", original=e) from e
            request.fallback_attempted = True
            logger.warning(f"Network error on {request.method} {request.path} ({e!r}), trying fallback URLs")
            if not await self.sweep():
                raise NetworkUnreachable(f"{request.method} {request.path} failed: {e!r}", original=e) from e

        logger.info(f"Retrying {request.method} {request.path} against {self.client.base_url}")
        try:
            return await call_next(request)
        except NETWORK_ERRORS as e:
            raise NetworkUnreachable(
                f"{request.method} {request.path} failed after host fallback: {e!r}", original=e) from e

    async def sweep(self) -> bool:
        """Probe fallback URLs in order; the first healthy one becomes the active base URL."""
        for url in self.client.fallback_urls:
            if url == self.client.base_url:
                continue
            logger.info(f"Trying fallback URL: {url}")
            if await self.client.check_health(url, timeout=self.client.probe_timeout):
                logger.info(f"Fallback URL {url} is working, switching to it")
                self.client.base_url = url
                return True
        logger.warning("All fallback URLs failed")
        return False
