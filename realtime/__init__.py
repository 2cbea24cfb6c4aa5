"""Realtime package for the Peteat client.

This package owns the Socket.IO connection used for chat and live updates.

Components:
- connection_manager: connection state machine, reconnect policy, listener replay
- listener_registry: durable listener registrations and Subscription handles
- transport: transport interface and the python-socketio implementation
- backoff: exponential backoff policy and reconnect budget
- scheduler: timer abstraction (event loop backed by default)
"""

from .backoff import BackoffPolicy, ReconnectBudget, backoff_delay
from .connection_manager import ConnectionManager, ConnectionState
from .listener_registry import ListenerRegistration, ListenerRegistry, Subscription
from .scheduler import LoopScheduler, Scheduler
from .transport import SocketIOTransport, Transport

__all__ = [
    'BackoffPolicy',
    'ReconnectBudget',
    'backoff_delay',
    'ConnectionManager',
    'ConnectionState',
    'ListenerRegistration',
    'ListenerRegistry',
    'Subscription',
    'LoopScheduler',
    'Scheduler',
    'SocketIOTransport',
    'Transport'
]
