"""Resource wrappers over the REST client: auth, messages, notifications."""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from core.credential_store import normalize_user
from core.errors import ApiError, NetworkUnreachable, NotAuthenticated
from .http_client import ApiClient

logger = logging.getLogger(__name__)

EMPTY_CONTACT_VALUES = ('', '+63')


class _Resource:
    def __init__(self, client: ApiClient):
        self.client = client

    @property
    def current_user(self) -> Optional[Dict[str, Any]]:
        return self.client.credentials.get_user()

    def _require_user(self) -> Dict[str, Any]:
        user = normalize_user(self.current_user)
        if not user or not user.get('id'):
            raise NotAuthenticated("Not authenticated")
        return user


class AuthAPI(_Resource):
    """Login state plus the write-locally-then-sync onboarding flow."""

    def __init__(self, client: ApiClient, sync_delay: float = 0.5):
        super().__init__(client)
        self.sync_delay = sync_delay
        self.pending_sync: Optional[asyncio.Task] = None

    async def login(self, email: str, password: str, remember_me: bool = False) -> Dict[str, Any]:
        data = await self.client.post('/users/login', json={
            'email': email,
            'password': password,
            'rememberMe': remember_me
        })
        user = normalize_user(data.get('user') or {})
        # The mobile client only knows pet owners and clinics
        if user.get('userType') == 'admin' or not user.get('userType'):
            user['userType'] = 'pet_owner'
        user.setdefault('isVerified', True)
        if not self.client.credentials.save_session(data.get('token'), user, data.get('refreshToken')):
            raise ApiError(500, "Login response did not include a user id", data)
        logger.info(f"Login successful for user {user.get('id')}")
        return user

    async def logout(self) -> None:
        self.client.credentials.clear()
        logger.info("Logged out")

    async def restore(self) -> bool:
        """
        Load the stored session.

        Returns:
            bool: True when a token and a valid user record were found. Any unsynced
            onboarding payload is then pushed in the background after ``sync_delay``.
        """
        store = self.client.credentials
        token = store.get_token()
        stored_user = store.get_user()
        if not token or stored_user is None:
            return False

        user = normalize_user(stored_user)
        if not user.get('id'):
            logger.error(f"Invalid user data in storage, missing id field: {stored_user}")
            store.clear()
            return False
        if user != stored_user:
            store.save_session(None, user)

        logger.info(f"Auth restored for user {user.get('email') or user['id']}")
        self.pending_sync = asyncio.get_running_loop().create_task(self._deferred_sync())
        return True

    async def _deferred_sync(self) -> None:
        await asyncio.sleep(self.sync_delay)
        await self.sync_pending_onboarding()

    async def complete_onboarding(self, user_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Save the onboarding answers locally first, then send them to the server.

        The local user record is updated before the request, so the caller can
        continue even if the API is unreachable; in that case the payload is
        kept under the unsynced onboarding key and the local record is returned.
        """
        user = self._require_user()
        data = self._normalize_onboarding(user_data)

        local_user = {
            **user,
            **data,
            'needsOnboarding': False,
            'completedOnboarding': True,
            'address': data.get('address') or user.get('address'),
            'contactNumber': data.get('contactNumber') or user.get('contactNumber'),
        }
        self.client.credentials.save_session(None, local_user)

        payload = {**data, 'needsOnboarding': False, 'completedOnboarding': True}
        try:
            return await self._push_onboarding(local_user, payload)
        except (ApiError, NetworkUnreachable) as e:
            logger.error(f"API error during onboarding completion: {e}")
            self.client.credentials.set_pending_onboarding(payload)
            logger.info("Saved unsynced onboarding payload for later retry")
            return local_user

    async def sync_pending_onboarding(self) -> bool:
        """Retry an onboarding payload that previously failed to reach the server."""
        store = self.client.credentials
        payload = store.get_pending_onboarding()
        if not payload:
            return False
        try:
            user = self._require_user()
            await self._push_onboarding(user, payload)
        except (ApiError, NetworkUnreachable, NotAuthenticated) as e:
            logger.warning(f"Pending onboarding sync failed: {e}")
            return False
        logger.info("Pending onboarding sync succeeded")
        return True

    async def _push_onboarding(self, user: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
        server_user = await self.client.put(f"/users/{user['id']}/complete-onboarding",
                                            json=payload, timeout=10.0)
        server_user = server_user if isinstance(server_user, dict) else {}
        merged = {
            **user,
            **normalize_user(server_user),
            'needsOnboarding': False,
            'completedOnboarding': True,
            'address': server_user.get('address') or user.get('address'),
            'contactNumber': server_user.get('contactNumber') or user.get('contactNumber'),
        }
        self.client.credentials.save_session(None, merged)
        self.client.credentials.clear_pending_onboarding()
        return merged

    @staticmethod
    def _normalize_onboarding(user_data: Dict[str, Any]) -> Dict[str, Any]:
        data = dict(user_data)
        if data.get('phone') and not data.get('contactNumber'):
            data['contactNumber'] = data['phone']
        data.pop('phone', None)
        if data.get('contactNumber') in EMPTY_CONTACT_VALUES:
            data.pop('contactNumber', None)
        if data.get('address') == '':
            data.pop('address')
        return data

    async def change_password(self, current_password: str, new_password: str) -> Any:
        return await self.client.put('/users/change-password', json={
            'currentPassword': current_password,
            'newPassword': new_password
        })


class MessageAPI(_Resource):
    async def get_conversation(self, other_user_id: str) -> List[Dict[str, Any]]:
        user = self._require_user()
        return await self.client.get('/messages/conversation',
                                     params={'user1': user['id'], 'user2': other_user_id})

    async def get_user_conversations(self) -> List[Dict[str, Any]]:
        user = self._require_user()
        return await self.client.get(f"/messages/user-conversations/{user['id']}")

    async def get_unread_count(self) -> int:
        user = self._require_user()
        data = await self.client.get(f"/messages/unread-count/{user['id']}")
        return int(data.get('count', 0)) if isinstance(data, dict) else 0

    async def send_message(self, receiver_id: str, content: str,
                           attachments: Optional[List[str]] = None) -> Dict[str, Any]:
        user = self._require_user()
        return await self.client.post('/messages', json={
            'sender': user['id'],
            'receiver': receiver_id,
            'content': content,
            'attachments': list(attachments or [])
        })

    async def mark_messages_as_read(self, message_ids: List[str]) -> Any:
        return await self.client.put('/messages/mark-read', json={'messageIds': list(message_ids)})

    async def delete_message(self, message_id: str) -> Any:
        return await self.client.delete(f"/messages/{message_id}")

    async def upload_attachment(self, file_path: str) -> str:
        """Upload a chat attachment and return its URL."""
        data = await self.client.upload('/uploads/chat', file_path)
        if not isinstance(data, dict) or not data.get('url'):
            raise ApiError(500, "Upload response did not include a url", data)
        return data['url']


class NotificationsAPI(_Resource):
    async def get_all(self) -> List[Dict[str, Any]]:
        return await self.client.get('/notifications')

    async def mark_read(self, notification_id: str) -> Any:
        return await self.client.patch(f"/notifications/{notification_id}/read")

    async def get_announcements(self) -> List[Dict[str, Any]]:
        return await self.client.get('/notifications/announcements')


class NfcTagAPI(_Resource):
    async def get_lost_pets(self) -> List[Dict[str, Any]]:
        return await self.client.get('/nfc-tags/lost-pets')
