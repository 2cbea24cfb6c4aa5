"""REST package for the Peteat client.

Components:
- http_client: ApiClient, the aiohttp request pipeline
- interceptors: auth header, token refresh and host fallback stages
- endpoints: AuthAPI, MessageAPI, NotificationsAPI, NfcTagAPI
"""

from .models import ApiRequest, ApiResponse
from .http_client import ApiClient
from .interceptors import AuthHeaderStage, HostFallbackStage, TokenRefreshStage
from .endpoints import AuthAPI, MessageAPI, NfcTagAPI, NotificationsAPI

__all__ = [
    'ApiRequest',
    'ApiResponse',
    'ApiClient',
    'AuthHeaderStage',
    'HostFallbackStage',
    'TokenRefreshStage',
    'AuthAPI',
    'MessageAPI',
    'NfcTagAPI',
    'NotificationsAPI'
]
