"""Conversation list kept current by ``conversationUpdated`` events."""
import logging
from typing import Any, Dict, List, Optional

from core.errors import PeteatError
from realtime.connection_manager import ConnectionManager
from realtime.listener_registry import Subscription
from rest.endpoints import MessageAPI
from utils.event_utils import EventType
from .models import ConversationSummary

logger = logging.getLogger(__name__)


class ConversationInbox:
    def __init__(self, manager: ConnectionManager, messages_api: MessageAPI):
        self.manager = manager
        self.messages_api = messages_api
        self.conversations: List[ConversationSummary] = []
        self.error: Optional[str] = None
        self._subscription: Optional[Subscription] = None

    async def refresh(self) -> List[ConversationSummary]:
        try:
            data = await self.messages_api.get_user_conversations()
        except PeteatError as e:
            logger.error(f"Error loading conversations: {e}")
            self.error = "Failed to load conversations"
            return self.conversations
        self.error = None
        self.conversations = [ConversationSummary.from_payload(c) for c in data or []]
        return self.conversations

    async def open(self) -> None:
        await self.refresh()
        try:
            await self.manager.get_or_create()
        except PeteatError as e:
            # Existing conversations stay visible; updates arrive once connected
            logger.error(f"Socket connection failed: {e}")
        if self._subscription is None:
            self._subscription = self.manager.subscribe(EventType.CONVERSATION_UPDATED.value,
                                                        self._on_conversation_updated)

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def get(self, user_id: str) -> Optional[ConversationSummary]:
        for summary in self.conversations:
            if summary.user_id == user_id:
                return summary
        return None

    def _on_conversation_updated(self, payload: Dict[str, Any]) -> None:
        if not isinstance(payload, dict):
            return
        summary = self.get(str(payload.get('userId')))
        if summary is not None:
            summary.merge(payload)
        else:
            self.conversations.insert(0, ConversationSummary.from_payload(payload))
