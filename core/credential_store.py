"""Device-local credential storage.

Tokens, the cached user record and the unsynced onboarding payload are kept
as string entries under fixed keys and written to a single JSON document in
the data directory. Everything else in the client reads credentials from here;
the REST client only keeps a cached copy of the access token, dropped
whenever the auth listeners fire.
"""
import os
import json
import logging
import tempfile
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from utils.path_config import get_credentials_file

logger = logging.getLogger(__name__)

AUTH_TOKEN_KEY = 'peteat_auth_token'
REFRESH_TOKEN_KEY = 'peteat_refresh_token'
USER_DATA_KEY = 'peteat_user_data'
UNSYNCED_ONBOARDING_KEY = 'peteat_unsynced_onboarding'

AuthListener = Callable[[Optional[Dict[str, Any]]], None]


@dataclass
class AuthSession:
    token: str
    refresh_token: Optional[str] = None
    user: Dict[str, Any] = field(default_factory=dict)


def normalize_user(user: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Return a copy of ``user`` whose ``id`` is filled from the backend ``_id``."""
    if user is None:
        return None
    user = dict(user)
    if user.get('_id') and not user.get('id'):
        user['id'] = str(user['_id'])
    return user


class CredentialStore:
    def __init__(self, path: Optional[str] = None, persist: bool = True):
        self.path = path or (get_credentials_file() if persist else None)
        self.persist = persist
        self._items: Dict[str, str] = {}
        self._listeners: List[AuthListener] = []
        self._load()

    # --- raw key/value access ---

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value
        self._save()

    def delete_item(self, key: str) -> None:
        if self._items.pop(key, None) is not None:
            self._save()

    # --- session helpers ---

    def get_token(self) -> Optional[str]:
        return self._items.get(AUTH_TOKEN_KEY)

    def get_refresh_token(self) -> Optional[str]:
        return self._items.get(REFRESH_TOKEN_KEY)

    def get_user(self) -> Optional[Dict[str, Any]]:
        raw = self._items.get(USER_DATA_KEY)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.error("Stored user record is not valid JSON")
            return None

    def get_session(self) -> Optional[AuthSession]:
        """The stored session, or None when the token or user is missing."""
        token = self.get_token()
        user = self.get_user()
        if not token or not user:
            return None
        return AuthSession(token=token, refresh_token=self.get_refresh_token(), user=user)

    def save_session(self, token: Optional[str], user: Optional[Dict[str, Any]] = None,
                     refresh_token: Optional[str] = None) -> bool:
        """
        Persist a login result. Missing arguments leave the stored value untouched.

        Returns:
            bool: False when the user record has no id and nothing was written.
        """
        user = normalize_user(user)
        if user is not None and not user.get('id'):
            logger.error(f"Refusing to save user without id field: {user}")
            return False

        if token:
            self._items[AUTH_TOKEN_KEY] = token
        if refresh_token:
            self._items[REFRESH_TOKEN_KEY] = refresh_token
        if user is not None:
            self._items[USER_DATA_KEY] = json.dumps(user)
        self._save()
        self._notify()
        return True

    def update_tokens(self, token: str, refresh_token: Optional[str] = None) -> None:
        """Store a refreshed access token (and a rotated refresh token, if any)."""
        self._items[AUTH_TOKEN_KEY] = token
        if refresh_token:
            self._items[REFRESH_TOKEN_KEY] = refresh_token
        self._save()
        self._notify()

    def clear(self) -> None:
        """Forget the session. The unsynced onboarding payload is kept for later retry."""
        for key in (AUTH_TOKEN_KEY, REFRESH_TOKEN_KEY, USER_DATA_KEY):
            self._items.pop(key, None)
        self._save()
        self._notify()

    # --- unsynced onboarding payload ---

    def get_pending_onboarding(self) -> Optional[Dict[str, Any]]:
        raw = self._items.get(UNSYNCED_ONBOARDING_KEY)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable unsynced onboarding payload")
            self.delete_item(UNSYNCED_ONBOARDING_KEY)
            return None

    def set_pending_onboarding(self, payload: Dict[str, Any]) -> None:
        self.set_item(UNSYNCED_ONBOARDING_KEY, json.dumps(payload))

    def clear_pending_onboarding(self) -> None:
        self.delete_item(UNSYNCED_ONBOARDING_KEY)

    # --- auth change notifications ---

    def add_auth_listener(self, listener: AuthListener) -> Callable[[], None]:
        """Register ``listener(user)``; returns a function that unregisters it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return remove

    def _notify(self) -> None:
        user = self.get_user()
        for listener in list(self._listeners):
            try:
                listener(user)
            except Exception as e:
                logger.error(f"Auth listener {listener!r} failed: {e}", exc_info=True)

    # --- persistence ---

    def _load(self) -> None:
        if not self.persist or not self.path or not os.path.exists(self.path):
            return
        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
            self._items = {k: v for k, v in data.items() if isinstance(v, str)}
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error reading credential store {self.path}: {e}. Starting empty.")
            self._items = {}

    def _save(self) -> None:
        if not self.persist or not self.path:
            return
        directory = os.path.dirname(self.path) or '.'
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.credentials-')
        try:
            with os.fdopen(fd, 'w') as f:
                json.dump(self._items, f)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
