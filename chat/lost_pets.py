"""Feed of lost-pet tags driven by ``lostPetUpdate`` broadcasts."""
import logging
from typing import Any, Dict, List, Optional

from core.errors import PeteatError
from realtime.connection_manager import ConnectionManager
from realtime.listener_registry import Subscription
from rest.endpoints import NfcTagAPI
from utils.event_utils import EventType

logger = logging.getLogger(__name__)

ACTION_LOST = 'lost'
ACTION_FOUND = 'found'


class LostPetFeed:
    def __init__(self, manager: ConnectionManager, nfc_api: Optional[NfcTagAPI] = None):
        self.manager = manager
        self.nfc_api = nfc_api
        self.tags: List[Dict[str, Any]] = []
        self._subscription: Optional[Subscription] = None

    async def open(self) -> None:
        if self.nfc_api is not None:
            try:
                self.tags = list(await self.nfc_api.get_lost_pets() or [])
            except PeteatError as e:
                logger.error(f"Error fetching lost pets: {e}")
        if self._subscription is None:
            self._subscription = self.manager.subscribe(EventType.LOST_PET_UPDATE.value, self.apply_update)

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def apply_update(self, payload: Dict[str, Any]) -> None:
        action = (payload or {}).get('action')
        tag = (payload or {}).get('tag') or {}
        if action == ACTION_LOST:
            self.tags.insert(0, tag)
        elif action == ACTION_FOUND:
            self.tags = [t for t in self.tags if t.get('_id') != tag.get('_id')]
        else:
            logger.warning(f"Ignoring lostPetUpdate with unknown action: {action!r}")
