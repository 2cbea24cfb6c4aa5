"""Realtime transport interface and the Socket.IO implementation.

A transport is one bidirectional channel with ``connect``, ``disconnect``,
``emit``, ``on`` and ``off``. Lifecycle changes are reported through the same
``on`` mechanism as server events:

- ``connect``: no arguments, fired once the handshake succeeds
- ``disconnect``: one argument, a ``DisconnectReason`` value

A failed connect raises ``TransportError`` from ``connect()``.
"""
import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

import socketio

from core.errors import TransportError
from utils.event_utils import DisconnectReason, EventType

logger = logging.getLogger(__name__)

Callback = Callable[..., Any]

LIFECYCLE_EVENTS = frozenset({EventType.CONNECT.value, EventType.DISCONNECT.value})


class Transport:
    """Base transport: keeps the local callback table and dispatches events to it."""

    connected = False

    def __init__(self):
        self._callbacks: Dict[str, List[Callback]] = defaultdict(list)

    async def connect(self) -> None:
        raise NotImplementedError

    async def disconnect(self) -> None:
        raise NotImplementedError

    async def emit(self, event: str, data: Any = None) -> None:
        raise NotImplementedError

    def on(self, event: str, callback: Callback) -> None:
        self._callbacks[event].append(callback)

    def off(self, event: str, callback: Optional[Callback] = None) -> None:
        """Detach one occurrence of ``callback``, or every callback for ``event``."""
        callbacks = self._callbacks.get(event)
        if not callbacks:
            return
        if callback is None:
            del self._callbacks[event]
            return
        if callback in callbacks:
            callbacks.remove(callback)
        if not callbacks:
            del self._callbacks[event]

    def listener_count(self, event: str) -> int:
        return len(self._callbacks.get(event, ()))

    async def _dispatch(self, event: str, *args: Any) -> None:
        """Invoke callbacks for ``event`` in attachment order, awaiting coroutine results."""
        for callback in list(self._callbacks.get(event, ())):
            try:
                result = callback(*args)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Listener for '{event}' raised: {e}", exc_info=True)


class SocketIOTransport(Transport):
    """Transport over a python-socketio ``AsyncClient``.

    The client's own reconnection is disabled; reconnects are driven by the
    connection manager, which builds a new transport for every attempt.
    """

    def __init__(self, url: str, token: str,
                 transports: Optional[List[str]] = None,
                 handshake_timeout: float = 10.0,
                 client: Optional[socketio.AsyncClient] = None):
        super().__init__()
        self.url = url
        self.transports = transports or ['websocket', 'polling']
        self.handshake_timeout = handshake_timeout
        self._auth = {'token': token}
        self._closing = False
        self._bridged = set()
        self.sio = client or socketio.AsyncClient(reconnection=False, logger=False, engineio_logger=False)
        self.sio.on('connect', self._on_sio_connect)
        self.sio.on('disconnect', self._on_sio_disconnect)

    @property
    def connected(self) -> bool:
        return self.sio.connected

    async def connect(self) -> None:
        self._closing = False
        logger.info(f"Connecting to realtime server at {self.url}")
        try:
            await self.sio.connect(
                self.url,
                auth=self._auth,
                transports=self.transports,
                wait_timeout=self.handshake_timeout
            )
        except socketio.exceptions.ConnectionError as e:
            raise TransportError(f"Failed to connect to {self.url}: {e}") from e

    async def disconnect(self) -> None:
        self._closing = True
        if not self.sio.connected:
            return
        try:
            await self.sio.disconnect()
        except socketio.exceptions.SocketIOError as e:
            raise TransportError(f"Error while disconnecting from {self.url}: {e}") from e

    async def emit(self, event: str, data: Any = None) -> None:
        if not self.sio.connected:
            raise TransportError(f"Cannot emit '{event}': socket is not connected")
        try:
            await self.sio.emit(event, data)
        except socketio.exceptions.SocketIOError as e:
            raise TransportError(f"Failed to emit '{event}': {e}") from e

    def on(self, event: str, callback: Callback) -> None:
        super().on(event, callback)
        if event not in LIFECYCLE_EVENTS and event not in self._bridged:
            self._bridge(event)

    def _bridge(self, event: str) -> None:
        # python-socketio keeps one handler per event; fan out from here
        async def handler(*args):
            await self._dispatch(event, *args)
        self.sio.on(event, handler)
        self._bridged.add(event)

    async def _on_sio_connect(self):
        logger.info(f"Socket connected to {self.url} (sid={self.sio.sid})")
        await self._dispatch(EventType.CONNECT.value)

    async def _on_sio_disconnect(self, *args):
        reason = args[0] if args else None
        if self._closing:
            reason = DisconnectReason.CLIENT_DISCONNECT
        elif reason not in (DisconnectReason.CLIENT_DISCONNECT, DisconnectReason.SERVER_DISCONNECT,
                            DisconnectReason.TRANSPORT_ERROR):
            reason = DisconnectReason.TRANSPORT_CLOSE
        logger.info(f"Socket disconnected from {self.url}: {reason}")
        await self._dispatch(EventType.DISCONNECT.value, reason)
