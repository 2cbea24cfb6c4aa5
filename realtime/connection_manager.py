"""Realtime connection manager.

Owns at most one live transport, drives it through the connection state
machine, reconnects with exponential backoff and keeps a durable listener
registry that is replayed onto every freshly connected transport, so
consumers never have to re-subscribe.

State machine::

    DISCONNECTED --initialize()--> CONNECTING --connect--> CONNECTED
    CONNECTING --connect error--> ERROR --(budget left)--> reconnect after backoff
    CONNECTED --server/transport disconnect--> DISCONNECTED --> reconnect after backoff
    CONNECTED --client disconnect--> DISCONNECTED (no reconnect)
    any --disconnect()--> DISCONNECTED, registry cleared, timers cancelled

Once the reconnect budget is spent the manager stays in ERROR until
``initialize()`` is called again (for example after a fresh login).
"""
import asyncio
import enum
import logging
from functools import partial
from typing import Any, Callable, List, Optional, Set, Tuple

from core.credential_store import CredentialStore
from core.errors import ConnectionTimeout, NotAuthenticated, TransportError
from utils.event_utils import DisconnectReason, EventType
from .backoff import BackoffPolicy, ReconnectBudget
from .listener_registry import Callback, ListenerRegistration, ListenerRegistry, Subscription
from .scheduler import LoopScheduler, Scheduler
from .transport import SocketIOTransport, Transport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[str, str], Transport]
StateListener = Callable[["ConnectionState"], None]


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class ConnectionManager:
    def __init__(self,
                 credential_store: CredentialStore,
                 transport_factory: TransportFactory,
                 url: str,
                 scheduler: Optional[Scheduler] = None,
                 backoff: Optional[BackoffPolicy] = None,
                 connect_timeout: float = 5.0):
        """
        Args:
            credential_store: Source of the auth token sent in the handshake.
            transport_factory: Called as ``factory(url, token)`` for every new transport.
            url: Realtime server URL.
            scheduler: Timer source; defaults to the running event loop.
            backoff: Reconnect policy; defaults to 1s base delay and 5 attempts.
            connect_timeout: Seconds ``get_or_create()`` waits for a pending connect.
        """
        self._credentials = credential_store
        self._factory = transport_factory
        self.url = url
        self._scheduler = scheduler or LoopScheduler()
        self.backoff = backoff or BackoffPolicy()
        self.budget = ReconnectBudget(max_attempts=self.backoff.max_attempts)
        self.connect_timeout = connect_timeout

        self.registry = ListenerRegistry()
        self._transport: Optional[Transport] = None
        self._attached: List[ListenerRegistration] = []
        self._lifecycle: List[Tuple[str, Callback]] = []
        self._state = ConnectionState.DISCONNECTED
        self._state_listeners: List[StateListener] = []

        self._reconnect_timer = None
        self._connect_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._waiters: List[asyncio.Future] = []

    @classmethod
    def from_config(cls, credential_store: CredentialStore, config_manager=None,
                    scheduler: Optional[Scheduler] = None) -> "ConnectionManager":
        """Build a manager using Socket.IO transports and the ``realtime`` config section."""
        if config_manager is None:
            from utils.config_loader import config as config_manager
        transports = config_manager.get('realtime', 'transports')
        handshake_timeout = config_manager.get('realtime', 'handshake_timeout', default=10.0)

        def factory(url: str, token: str) -> Transport:
            return SocketIOTransport(url, token, transports=transports,
                                     handshake_timeout=handshake_timeout)

        backoff = BackoffPolicy(
            base_delay=config_manager.get('realtime', 'reconnect_base_delay', default=1.0),
            max_attempts=config_manager.get('realtime', 'max_reconnect_attempts', default=5),
            jitter=config_manager.get('realtime', 'reconnect_jitter', default=0.0),
        )
        return cls(credential_store, factory, config_manager.get('realtime', 'url'),
                   scheduler=scheduler, backoff=backoff,
                   connect_timeout=config_manager.get('realtime', 'connect_timeout', default=5.0))

    # --- state ---

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def transport(self) -> Optional[Transport]:
        return self._transport

    @property
    def is_connected(self) -> bool:
        return (self._state is ConnectionState.CONNECTED
                and self._transport is not None and self._transport.connected)

    def add_state_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register ``listener(state)`` for state changes; returns an unregister function."""
        self._state_listeners.append(listener)

        def remove() -> None:
            if listener in self._state_listeners:
                self._state_listeners.remove(listener)
        return remove

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        logger.debug(f"Connection state {self._state.value} -> {state.value}")
        self._state = state
        for listener in list(self._state_listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(f"State listener {listener!r} failed: {e}", exc_info=True)

    # --- connection lifecycle ---

    async def initialize(self) -> Transport:
        """
        Open a fresh transport, replacing any previous one.

        Raises:
            NotAuthenticated: No auth token is stored.
            TransportError: The first connect failed (a reconnect is already scheduled).
        """
        token = self._credentials.get_token()
        if not token:
            self._set_state(ConnectionState.ERROR)
            raise NotAuthenticated("Cannot initialize socket: user not authenticated")

        self._cancel_reconnect_timer()
        previous = self._teardown_transport()
        self.budget.reset()
        transport = self._create_transport(token)
        if previous is not None:
            await self._close_transport(previous)

        self._connect_task = self._spawn(self._open(transport))
        await self._connect_task
        return transport

    async def get_or_create(self) -> Transport:
        """
        Return a connected transport, connecting first if needed.

        Raises:
            ConnectionTimeout: A pending connect did not finish within ``connect_timeout``.
            TransportError: The pending connect failed.
            NotAuthenticated: No auth token is stored.
        """
        transport = self._transport
        if transport is not None and transport.connected and self._state is ConnectionState.CONNECTED:
            return transport
        if transport is None:
            return await self.initialize()

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        timer = self._scheduler.call_later(self.connect_timeout, self._expire_waiter, waiter)
        self._cancel_reconnect_timer()
        self._start_reconnect()
        try:
            return await waiter
        finally:
            timer.cancel()
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    async def emit(self, event: str, data: Any = None) -> None:
        """Send ``event`` over the live transport, connecting first if needed."""
        transport = await self.get_or_create()
        await transport.emit(event, data)

    async def disconnect(self) -> None:
        """Close the connection for good: registry cleared, timers cancelled. Safe to repeat."""
        self._cancel_reconnect_timer()
        removed = self.registry.clear()
        previous = self._teardown_transport()
        self._set_state(ConnectionState.DISCONNECTED)
        self._reject_waiters(TransportError("Socket disconnected"))
        if removed:
            logger.info(f"Removed {len(removed)} realtime listener(s) on disconnect")
        if previous is not None:
            await self._close_transport(previous)

    async def wait_for_pending(self) -> None:
        """Wait until background connect and reconnect work has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # --- listener registry ---

    def add_listener(self, event: str, callback: Callback) -> str:
        """Register ``callback`` for ``event`` durably and return its listener id."""
        registration = self.registry.add(event, callback)
        if self._transport is not None:
            self._transport.on(event, callback)
            self._attached.append(registration)
        return registration.id

    def subscribe(self, event: str, callback: Callback) -> Subscription:
        """Like ``add_listener`` but returns a handle that unsubscribes itself."""
        listener_id = self.add_listener(event, callback)
        return Subscription(self, self.registry.get(listener_id))

    def remove_listener_by_id(self, listener_id: str) -> bool:
        registration = self.registry.remove(listener_id)
        if registration is None:
            return False
        self._detach(registration)
        return True

    def remove_listeners_by_event(self, event: str, callback: Optional[Callback] = None) -> int:
        """Remove all listeners for ``event``, or only those registered with ``callback``."""
        removed = self.registry.remove_event(event, callback)
        for registration in removed:
            self._detach(registration)
        return len(removed)

    def _detach(self, registration: ListenerRegistration) -> None:
        if registration in self._attached:
            self._attached.remove(registration)
            if self._transport is not None:
                self._transport.off(registration.event, registration.callback)

    def _replay_listeners(self, transport: Transport) -> None:
        for registration in self._attached:
            transport.off(registration.event, registration.callback)
        self._attached = []
        for registration in self.registry:
            transport.on(registration.event, registration.callback)
            self._attached.append(registration)
        logger.debug(f"Reattached {len(self._attached)} realtime listener(s)")

    # --- transport handling ---

    def _create_transport(self, token: str) -> Transport:
        transport = self._factory(self.url, token)
        on_connect = partial(self._handle_connect, transport)
        on_disconnect = partial(self._handle_disconnect, transport)
        transport.on(EventType.CONNECT.value, on_connect)
        transport.on(EventType.DISCONNECT.value, on_disconnect)
        self._lifecycle = [(EventType.CONNECT.value, on_connect),
                           (EventType.DISCONNECT.value, on_disconnect)]
        self._transport = transport
        self._attached = []
        self._set_state(ConnectionState.CONNECTING)
        return transport

    def _teardown_transport(self) -> Optional[Transport]:
        """Detach every callback from the current transport and forget it."""
        transport = self._transport
        if transport is None:
            return None
        for event, callback in self._lifecycle:
            transport.off(event, callback)
        for registration in self._attached:
            transport.off(registration.event, registration.callback)
        self._lifecycle = []
        self._attached = []
        self._transport = None
        return transport

    async def _close_transport(self, transport: Transport) -> None:
        try:
            await transport.disconnect()
        except TransportError as e:
            logger.warning(f"Error closing previous transport: {e}")

    async def _open(self, transport: Transport) -> None:
        try:
            await transport.connect()
        except TransportError as e:
            if transport is self._transport:
                self._handle_connect_error(transport, e)
            raise
        if transport is not self._transport:
            # Replaced or disconnected while the handshake was in flight
            await self._close_transport(transport)
            raise TransportError("Connection superseded before it completed")
        if self._state is not ConnectionState.CONNECTED and transport.connected:
            self._handle_connect(transport)

    def _handle_connect(self, transport: Transport) -> None:
        if transport is not self._transport or self._state is ConnectionState.CONNECTED:
            return
        logger.info("Socket connected")
        self.budget.reset()
        self._cancel_reconnect_timer()
        self._replay_listeners(transport)
        self._set_state(ConnectionState.CONNECTED)
        self._resolve_waiters(transport)

    def _handle_disconnect(self, transport: Transport, reason: Optional[str] = None) -> None:
        if transport is not self._transport:
            return
        logger.info(f"Socket disconnected: {reason}")
        self._set_state(ConnectionState.DISCONNECTED)
        if reason in DisconnectReason.RECONNECTABLE:
            self._schedule_reconnect()

    def _handle_connect_error(self, transport: Transport, error: TransportError) -> None:
        logger.error(f"Socket connection error: {error}")
        self._set_state(ConnectionState.ERROR)
        self._reject_waiters(error)
        self._schedule_reconnect()

    # --- reconnection ---

    def _schedule_reconnect(self) -> None:
        if self.budget.exhausted:
            logger.error("Max reconnection attempts reached, giving up")
            self._cancel_reconnect_timer()
            previous = self._teardown_transport()
            if previous is not None:
                self._spawn(self._close_transport(previous))
            self._set_state(ConnectionState.ERROR)
            self._reject_waiters(TransportError("Max reconnection attempts reached"))
            return

        attempt = self.budget.consume()
        delay = self.backoff.delay_for(attempt)
        logger.info(f"Attempting reconnect {attempt}/{self.budget.max_attempts} in {delay:.2f}s")
        self._cancel_reconnect_timer()
        self._reconnect_timer = self._scheduler.call_later(delay, self._on_reconnect_timer)

    def _on_reconnect_timer(self) -> None:
        self._reconnect_timer = None
        if self._state in (ConnectionState.DISCONNECTED, ConnectionState.ERROR):
            self._start_reconnect()

    def _start_reconnect(self) -> asyncio.Task:
        if self._connect_task is not None and not self._connect_task.done():
            return self._connect_task
        self._connect_task = self._spawn(self._reconnect())
        return self._connect_task

    async def _reconnect(self) -> None:
        token = self._credentials.get_token()
        previous = self._teardown_transport()
        if not token:
            logger.error("Cannot reconnect socket: user not authenticated")
            self._set_state(ConnectionState.ERROR)
            self._reject_waiters(NotAuthenticated("User not authenticated"))
            if previous is not None:
                await self._close_transport(previous)
            return

        transport = self._create_transport(token)
        if previous is not None:
            await self._close_transport(previous)
        try:
            await self._open(transport)
        except TransportError as e:
            # Already recorded by the state machine
            logger.debug(f"Reconnect attempt did not succeed: {e}")

    def _cancel_reconnect_timer(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    # --- waiters and tasks ---

    def _expire_waiter(self, waiter: asyncio.Future) -> None:
        if not waiter.done():
            waiter.set_exception(ConnectionTimeout(
                f"Socket connection timeout after {self.connect_timeout}s"))

    def _resolve_waiters(self, transport: Transport) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(transport)

    def _reject_waiters(self, error: Exception) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_exception(error)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
