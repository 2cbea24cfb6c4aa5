"""Utilities for creating standardized Socket.IO message payloads."""

import time
import uuid
from typing import Dict, Any, List, Optional
from datetime import datetime, timezone

def utc_now_iso() -> str:
    """Current time as an ISO 8601 string in UTC."""
    return datetime.now(timezone.utc).isoformat()

def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp (a trailing ``Z`` is accepted).

    Returns None for missing or unparseable values; naive results are taken as UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed

def temporary_message_id() -> str:
    """Timestamp-based id for a message that has not reached the server yet."""
    return str(int(time.time() * 1000))

def new_client_message_id() -> str:
    """Correlation id sent with a message so its echo can be matched."""
    return uuid.uuid4().hex

def create_send_message_payload(
    receiver: str,
    content: str,
    attachments: Optional[List[str]] = None,
    client_message_id: Optional[str] = None
) -> Dict[str, Any]:
    """
    Creates the payload for a ``sendMessage`` event.

    Args:
        receiver: Id of the user receiving the message.
        content: Message text (may be empty when attachments are given).
        attachments: Optional list of uploaded attachment URLs.
        client_message_id: Optional correlation id echoed back by the server.

    Returns:
        A dictionary ready to be emitted.
    """
    payload: Dict[str, Any] = {
        "receiver": receiver,
        "content": content,
    }
    if attachments:
        payload["attachments"] = list(attachments)
    if client_message_id:
        payload["clientMessageId"] = client_message_id
    return payload

def create_mark_read_payload(message_ids: List[str]) -> Dict[str, Any]:
    """Creates the payload for a ``markRead`` event."""
    return {"messageIds": list(message_ids)}
