"""Chat data records built from server payloads."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from utils.message_utils import parse_timestamp, temporary_message_id, utc_now_iso


def _as_id(value: Any) -> str:
    # Populated references arrive as {"_id": ...} objects
    if isinstance(value, dict):
        value = value.get('_id') or value.get('id')
    return str(value) if value is not None else ''


@dataclass
class ConversationMessage:
    id: str
    sender: str
    receiver: str
    content: str
    timestamp: str
    attachments: List[str] = field(default_factory=list)
    read: bool = False
    pending: bool = False
    failed: bool = False
    client_message_id: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ConversationMessage":
        return cls(
            id=_as_id(payload.get('_id') or payload.get('id')),
            sender=_as_id(payload.get('sender')),
            receiver=_as_id(payload.get('receiver')),
            content=payload.get('content') or '',
            timestamp=payload.get('timestamp') or payload.get('createdAt') or utc_now_iso(),
            attachments=list(payload.get('attachments') or []),
            read=bool(payload.get('read', False)),
            client_message_id=payload.get('clientMessageId'),
        )

    @classmethod
    def optimistic(cls, sender: str, receiver: str, content: str,
                   attachments: Optional[List[str]] = None,
                   client_message_id: Optional[str] = None) -> "ConversationMessage":
        """Local copy shown immediately while the server has not confirmed the message."""
        return cls(
            id=temporary_message_id(),
            sender=sender,
            receiver=receiver,
            content=content,
            timestamp=utc_now_iso(),
            attachments=list(attachments or []),
            pending=True,
            client_message_id=client_message_id,
        )

    @property
    def sent_at(self) -> Optional[datetime]:
        return parse_timestamp(self.timestamp)

    def between(self, user_a: str, user_b: str) -> bool:
        return {self.sender, self.receiver} == {user_a, user_b}


@dataclass
class ConversationSummary:
    user_id: str
    conversation_id: str = ''
    partner_name: Optional[str] = None
    last_message: str = ''
    timestamp: Optional[str] = None
    unread: int = 0
    extra: Dict[str, Any] = field(default_factory=dict)

    _FIELDS = {
        'userId': 'user_id',
        'conversationId': 'conversation_id',
        'partnerName': 'partner_name',
        'lastMessage': 'last_message',
        'timestamp': 'timestamp',
        'unread': 'unread',
    }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ConversationSummary":
        summary = cls(user_id=_as_id(payload.get('userId')))
        summary.merge(payload)
        return summary

    def merge(self, payload: Dict[str, Any]) -> None:
        """Overlay the keys present in ``payload``; a missing key keeps the current value."""
        for key, value in payload.items():
            attr = self._FIELDS.get(key)
            if attr is None:
                self.extra[key] = value
            elif value is not None:
                setattr(self, attr, _as_id(value) if attr == 'user_id' else value)
