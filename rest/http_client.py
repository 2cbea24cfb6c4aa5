"""REST client for the Peteat API.

Every call goes through a small interceptor chain (see ``rest.interceptors``):

    HostFallbackStage -> TokenRefreshStage -> AuthHeaderStage -> send

The fallback stage recovers from unreachable hosts by probing alternate base
URLs, the refresh stage recovers from expired access tokens. Each stage
retries a given request at most once, so the two paths never loop.
"""
import os
import logging
import mimetypes
from typing import Any, Dict, List, Optional

import aiohttp

from core.credential_store import CredentialStore
from core.errors import ApiError
from utils.config_loader import socket_url_from_api
from .interceptors import AuthHeaderStage, HostFallbackStage, Stage, TokenRefreshStage
from .models import NETWORK_ERRORS, ApiRequest, ApiResponse, error_message

logger = logging.getLogger(__name__)


class ApiClient:
    def __init__(self,
                 base_url: str,
                 credential_store: CredentialStore,
                 fallback_urls: Optional[List[str]] = None,
                 timeout: float = 15.0,
                 probe_timeout: float = 2.0,
                 health_path: str = '/health',
                 session: Optional[aiohttp.ClientSession] = None):
        self.base_url = base_url.rstrip('/')
        self.credentials = credential_store
        self.fallback_urls = [u.rstrip('/') for u in (fallback_urls or [])]
        self.timeout = timeout
        self.probe_timeout = probe_timeout
        self.health_path = health_path
        self._session = session
        self._owns_session = session is None
        self._token: Optional[str] = None
        self._remove_auth_listener = credential_store.add_auth_listener(self._on_auth_change)
        self.stages: List[Stage] = [
            HostFallbackStage(self),
            TokenRefreshStage(self),
            AuthHeaderStage(self),
        ]

    @classmethod
    def from_config(cls, credential_store: CredentialStore, config_manager=None) -> "ApiClient":
        if config_manager is None:
            from utils.config_loader import config as config_manager
        return cls(
            config_manager.get('api', 'base_url'),
            credential_store,
            fallback_urls=config_manager.get('api', 'fallback_urls', default=[]),
            timeout=config_manager.get('api', 'timeout', default=15.0),
            probe_timeout=config_manager.get('api', 'probe_timeout', default=2.0),
            health_path=config_manager.get('api', 'health_path', default='/health'),
        )

    # --- token cache ---

    @property
    def token(self) -> Optional[str]:
        """Cached access token, loaded from the credential store on a miss."""
        if self._token is None:
            self._token = self.credentials.get_token()
        return self._token

    def _on_auth_change(self, user) -> None:
        self._token = None

    # --- session lifecycle ---

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers={'Accept': 'application/json'})
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        self._remove_auth_listener()
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # --- request pipeline ---

    @property
    def host_url(self) -> str:
        """Active host without the /api suffix."""
        return socket_url_from_api(self.base_url)

    def url_for(self, request: ApiRequest) -> str:
        base = self.host_url if request.root_relative else self.base_url
        return f"{base}/{request.path.lstrip('/')}"

    async def request(self, method: str, path: str, *, json: Any = None,
                      params: Optional[Dict[str, Any]] = None, data: Any = None,
                      headers: Optional[Dict[str, str]] = None, timeout: Optional[float] = None,
                      root_relative: bool = False) -> Any:
        """
        Issue a request and return the decoded response body.

        Raises:
            ApiError: The API answered with a non-2xx status.
            NotAuthenticated: The token expired and could not be refreshed.
            NetworkUnreachable: Neither the active host nor any fallback answered.
        """
        api_request = ApiRequest(method.upper(), path, json=json, params=params, data=data,
                                 headers=dict(headers or {}), timeout=timeout,
                                 root_relative=root_relative)
        response = await self.execute(api_request)
        if not response.ok:
            raise ApiError(response.status, error_message(response.data, f"HTTP {response.status}"),
                           response.data)
        return response.data

    async def execute(self, request: ApiRequest) -> ApiResponse:
        """Run ``request`` through every stage and return the raw response."""
        async def call(index: int, req: ApiRequest) -> ApiResponse:
            if index == len(self.stages):
                return await self.send(req)
            return await self.stages[index](req, lambda r: call(index + 1, r))
        return await call(0, request)

    async def send(self, request: ApiRequest) -> ApiResponse:
        """Perform the HTTP exchange itself, with no recovery logic."""
        session = await self._get_session()
        url = self.url_for(request)
        body = request.data() if callable(request.data) else request.data
        timeout = aiohttp.ClientTimeout(total=request.timeout or self.timeout)
        logger.debug(f"{request.method} {url}")
        async with session.request(request.method, url, json=request.json, params=request.params,
                                   data=body, headers=request.headers, timeout=timeout) as resp:
            data = await self._read_body(resp)
            return ApiResponse(resp.status, data, dict(resp.headers), str(resp.url))

    @staticmethod
    async def _read_body(resp: aiohttp.ClientResponse) -> Any:
        if resp.content_type == 'application/json':
            try:
                return await resp.json()
            except (aiohttp.ContentTypeError, ValueError):
                pass
        text = await resp.text()
        return text or None

    async def get(self, path: str, **kwargs) -> Any:
        return await self.request('GET', path, **kwargs)

    async def post(self, path: str, **kwargs) -> Any:
        return await self.request('POST', path, **kwargs)

    async def put(self, path: str, **kwargs) -> Any:
        return await self.request('PUT', path, **kwargs)

    async def patch(self, path: str, **kwargs) -> Any:
        return await self.request('PATCH', path, **kwargs)

    async def delete(self, path: str, **kwargs) -> Any:
        return await self.request('DELETE', path, **kwargs)

    async def upload(self, path: str, file_path: str, field_name: str = 'file',
                     content_type: Optional[str] = None, root_relative: bool = True) -> Any:
        """Multipart upload of a local file (paths default to the host root, e.g. /uploads/chat)."""
        with open(file_path, 'rb') as f:
            content = f.read()
        filename = os.path.basename(file_path)
        content_type = content_type or mimetypes.guess_type(filename)[0] or 'application/octet-stream'

        def build_form() -> aiohttp.FormData:
            form = aiohttp.FormData()
            form.add_field(field_name, content, filename=filename, content_type=content_type)
            return form

        return await self.request('POST', path, data=build_form, timeout=30.0,
                                  root_relative=root_relative)

    async def check_health(self, base_url: Optional[str] = None, timeout: Optional[float] = None) -> bool:
        """Liveness probe: True when ``{base_url}/health`` answers with a 2xx status."""
        base = (base_url or self.base_url).rstrip('/')
        session = await self._get_session()
        try:
            async with session.get(f"{base}{self.health_path}",
                                   timeout=aiohttp.ClientTimeout(total=timeout or self.probe_timeout)) as resp:
                return 200 <= resp.status < 300
        except NETWORK_ERRORS as e:
            logger.info(f"Health check for {base} failed: {e!r}")
            return False
