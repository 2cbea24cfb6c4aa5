"""Test configuration and fixtures for the Peteat client tests."""
import os
import sys
import asyncio
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer
from typing import Any, Callable, List, Optional

# Add application root to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.credential_store import CredentialStore
from core.errors import TransportError
from realtime.backoff import BackoffPolicy
from realtime.connection_manager import ConnectionManager
from realtime.scheduler import Scheduler
from realtime.transport import Transport
from utils.event_utils import DisconnectReason, EventType

USER = {'_id': 'user-1', 'email': 'owner@example.com', 'fullName': 'Pet Owner', 'userType': 'pet_owner'}
PARTNER_ID = 'user-2'
SOCKET_URL = 'http://socket.test'


class FakeTransport(Transport):
    """In-memory transport. ``mode`` is one of ``ok``, ``fail`` or ``hang``."""

    def __init__(self, url: str, token: str, mode: str = 'ok'):
        super().__init__()
        self.url = url
        self.token = token
        self.mode = mode
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.emitted: List[tuple] = []
        self.release = asyncio.Event()
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.mode == 'fail':
            raise TransportError(f"Failed to connect to {self.url}: connection refused")
        if self.mode == 'hang':
            await self.release.wait()
            if self.mode != 'ok':
                raise TransportError(f"Handshake with {self.url} abandoned")
        self._connected = True
        await self._dispatch(EventType.CONNECT.value)

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.release.set()
        if self._connected:
            self._connected = False
            await self._dispatch(EventType.DISCONNECT.value, DisconnectReason.CLIENT_DISCONNECT)

    async def emit(self, event: str, data: Any = None) -> None:
        if not self._connected:
            raise TransportError(f"Cannot emit '{event}': socket is not connected")
        self.emitted.append((event, data))

    def finish_connect(self) -> None:
        """Let a hanging handshake complete successfully."""
        self.mode = 'ok'
        self.release.set()

    async def server_emit(self, event: str, *args: Any) -> None:
        """Deliver a server-side event to the attached callbacks."""
        await self._dispatch(event, *args)

    async def drop(self, reason: str = DisconnectReason.TRANSPORT_CLOSE) -> None:
        """Simulate the connection going away without the client asking."""
        self._connected = False
        await self._dispatch(EventType.DISCONNECT.value, reason)


class FakeTransportFactory:
    """Builds FakeTransports and remembers every one of them in creation order."""

    def __init__(self, mode: str = 'ok'):
        self.mode = mode
        self.transports: List[FakeTransport] = []

    def __call__(self, url: str, token: str) -> FakeTransport:
        transport = FakeTransport(url, token, mode=self.mode)
        self.transports.append(transport)
        return transport

    @property
    def latest(self) -> Optional[FakeTransport]:
        return self.transports[-1] if self.transports else None

    @property
    def connect_calls(self) -> int:
        return sum(t.connect_calls for t in self.transports)

    def release_all(self) -> None:
        for transport in self.transports:
            transport.release.set()


class FakeTimer:
    def __init__(self, delay: float, callback: Callable[..., Any], args: tuple):
        self.delay = delay
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler(Scheduler):
    """Scheduler that records requested delays and only fires timers when told to."""

    def __init__(self):
        self.timers: List[FakeTimer] = []

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> FakeTimer:
        timer = FakeTimer(delay, callback, args)
        self.timers.append(timer)
        return timer

    @property
    def delays(self) -> List[float]:
        return [t.delay for t in self.timers]

    @property
    def pending(self) -> List[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def fire(self, timer: FakeTimer) -> None:
        timer.fired = True
        timer.callback(*timer.args)

    def fire_next(self) -> FakeTimer:
        timer = self.pending[0]
        self.fire(timer)
        return timer


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep config, logs and credentials of every test inside its tmp dir."""
    monkeypatch.setenv("PETEAT_HOME", str(tmp_path))
    for name in ("PETEAT_API_URL", "PETEAT_DEV_IP", "PETEAT_SOCKET_URL", "PETEAT_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


@pytest.fixture
def credential_store():
    """Provide an in-memory credential store holding a logged-in session."""
    store = CredentialStore(persist=False)
    store.save_session('token-1', dict(USER), 'refresh-1')
    return store


@pytest.fixture
def empty_store():
    return CredentialStore(persist=False)


@pytest.fixture
def transport_factory():
    return FakeTransportFactory()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest_asyncio.fixture
async def manager(credential_store, transport_factory, scheduler):
    """Provide a connection manager wired to fake transports and a manual scheduler."""
    manager = ConnectionManager(
        credential_store,
        transport_factory,
        SOCKET_URL,
        scheduler=scheduler,
        backoff=BackoffPolicy(base_delay=1.0, max_attempts=5),
        connect_timeout=5.0
    )
    yield manager
    await manager.disconnect()
    transport_factory.release_all()
    await manager.wait_for_pending()


@pytest_asyncio.fixture
async def connected_manager(manager):
    """Provide a manager with a live fake transport."""
    await manager.initialize()
    yield manager


@pytest_asyncio.fixture
async def start_server():
    """Start aiohttp test servers on demand; all of them are closed after the test."""
    servers: List[TestServer] = []

    async def start(app: web.Application) -> TestServer:
        server = TestServer(app)
        await server.start_server()
        servers.append(server)
        return server

    yield start
    for server in servers:
        await server.close()


def api_url(server: TestServer) -> str:
    """Base URL of the /api prefix on a test server."""
    return str(server.make_url('/api'))
