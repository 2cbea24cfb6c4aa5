"""One-to-one chat conversation over the shared realtime connection.

Sent messages appear in ``messages`` at once as pending entries. When the
server echoes a message back (``messageSaved`` to the author,
``receiveMessage`` to both sides) the pending entry is replaced by the saved
one instead of being shown twice.

Matching an echo, in order:
- same ``clientMessageId`` as a pending entry
- otherwise the oldest pending entry with the same sender, receiver and
  content sent within ``dedupe_window`` seconds of the echo
- otherwise the echo is a new message and is appended

An echo whose server id is already in the list is dropped.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from core.errors import PeteatError
from realtime.connection_manager import ConnectionManager
from realtime.listener_registry import Subscription
from rest.endpoints import MessageAPI
from utils.event_utils import EventType
from utils.message_utils import create_mark_read_payload, create_send_message_payload, new_client_message_id
from .models import ConversationMessage

logger = logging.getLogger(__name__)


class ChatConversation:
    def __init__(self,
                 manager: ConnectionManager,
                 messages_api: MessageAPI,
                 user_id: str,
                 partner_id: str,
                 dedupe_window: float = 10.0):
        self.manager = manager
        self.messages_api = messages_api
        self.user_id = str(user_id)
        self.partner_id = str(partner_id)
        self.dedupe_window = dedupe_window
        self.messages: List[ConversationMessage] = []
        self._subscriptions: List[Subscription] = []

    @property
    def is_open(self) -> bool:
        return bool(self._subscriptions)

    async def open(self) -> None:
        """Load history, make sure the socket is up and start listening for messages."""
        try:
            history = await self.messages_api.get_conversation(self.partner_id)
            self.messages = [ConversationMessage.from_payload(m) for m in history or []]
        except PeteatError as e:
            logger.error(f"Failed to load conversation with {self.partner_id}: {e}")
            self.messages = []

        try:
            await self.manager.get_or_create()
        except PeteatError as e:
            # Listeners stay registered and are attached once the socket connects
            logger.error(f"Socket connect error: {e}")

        if not self._subscriptions:
            self._subscriptions = [
                self.manager.subscribe(EventType.RECEIVE_MESSAGE.value, self._on_message),
                self.manager.subscribe(EventType.MESSAGE_SAVED.value, self._on_message),
                self.manager.subscribe(EventType.READ_RECEIPT.value, self._on_read_receipt),
            ]

    def close(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

    async def __aenter__(self) -> "ChatConversation":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    async def send(self, content: str, attachments: Optional[List[str]] = None) -> Optional[ConversationMessage]:
        """
        Send a message to the partner.

        The pending copy is appended before anything is awaited. If the emit
        fails the copy stays in the list with ``failed`` set.

        Returns:
            The optimistic message, or None when there was nothing to send.
        """
        content = (content or '').strip()
        if not content and not attachments:
            return None

        client_message_id = new_client_message_id()
        message = ConversationMessage.optimistic(self.user_id, self.partner_id, content,
                                                 attachments, client_message_id)
        self.messages.append(message)

        payload = create_send_message_payload(self.partner_id, content, attachments, client_message_id)
        try:
            await self.manager.emit(EventType.SEND_MESSAGE.value, payload)
        except PeteatError as e:
            logger.error(f"Failed to send message: {e}")
            message.failed = True
        return message

    async def send_attachment(self, file_path: str) -> Optional[ConversationMessage]:
        """Upload ``file_path`` and send it as an attachment-only message."""
        url = await self.messages_api.upload_attachment(file_path)
        return await self.send('', attachments=[url])

    async def mark_read(self) -> List[str]:
        """Mark every unread message from the partner as read and notify the server."""
        unread = [m for m in self.messages
                  if m.sender == self.partner_id and not m.read and not m.pending]
        if not unread:
            return []
        ids = [m.id for m in unread]
        await self.manager.emit(EventType.MARK_READ.value, create_mark_read_payload(ids))
        for message in unread:
            message.read = True
        return ids

    # --- incoming events ---

    def _on_message(self, payload: Dict[str, Any]) -> None:
        if not isinstance(payload, dict):
            return
        message = ConversationMessage.from_payload(payload)
        if not message.between(self.user_id, self.partner_id):
            return
        if message.id and any(m.id == message.id and not m.pending for m in self.messages):
            logger.debug(f"Dropping duplicate echo for message {message.id}")
            return

        index = self._find_pending(message)
        if index is None:
            self.messages.append(message)
        else:
            self.messages[index] = message

    def _find_pending(self, echo: ConversationMessage) -> Optional[int]:
        if echo.client_message_id:
            for i, m in enumerate(self.messages):
                if m.pending and m.client_message_id == echo.client_message_id:
                    return i

        echo_time = echo.sent_at or datetime.now(timezone.utc)
        for i, m in enumerate(self.messages):
            if not m.pending or (m.sender, m.receiver, m.content) != (echo.sender, echo.receiver, echo.content):
                continue
            sent_at = m.sent_at
            if sent_at is not None and abs((echo_time - sent_at).total_seconds()) <= self.dedupe_window:
                return i
        return None

    def _on_read_receipt(self, payload: Dict[str, Any]) -> None:
        ids = set((payload or {}).get('messageIds') or [])
        for message in self.messages:
            if message.id in ids:
                message.read = True
