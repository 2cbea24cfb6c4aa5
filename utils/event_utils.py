import enum

class EventType(enum.Enum):
    """
    Enumerates the Socket.IO events exchanged with the Peteat backend.
    Payload shapes are noted beside each member.
    """
    # Transport lifecycle (raised locally by the transport)
    CONNECT = "connect" # Payload: none
    DISCONNECT = "disconnect" # Payload: reason: str

    # Client -> Server
    SEND_MESSAGE = "sendMessage" # Payload: {"receiver", "content", "attachments"?, "clientMessageId"?}
    MARK_READ = "markRead" # Payload: {"messageIds": [str]}

    # Server -> Client
    RECEIVE_MESSAGE = "receiveMessage" # Payload: {"_id", "sender", "receiver", "content", "timestamp", "attachments"?}
    MESSAGE_SAVED = "messageSaved" # Payload: same as RECEIVE_MESSAGE, sent back to the author
    CONVERSATION_UPDATED = "conversationUpdated" # Payload: {"conversationId", "userId", "lastMessage", "timestamp", "unread"}
    LOST_PET_UPDATE = "lostPetUpdate" # Payload: {"action": "lost" | "found", "tag": {...}}
    READ_RECEIPT = "readReceipt" # Payload: {"messageIds": [str]}
    ERROR = "error" # Payload: {"message": str, "error"?: str}


class DisconnectReason:
    """Normalised reasons reported with the DISCONNECT event."""
    CLIENT_DISCONNECT = "client disconnect"
    SERVER_DISCONNECT = "server disconnect"
    TRANSPORT_CLOSE = "transport close"
    TRANSPORT_ERROR = "transport error"

    # Reasons after which the connection manager reconnects on its own
    RECONNECTABLE = frozenset({SERVER_DISCONNECT, TRANSPORT_CLOSE, TRANSPORT_ERROR})
