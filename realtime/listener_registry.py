"""Durable registry of realtime event listeners.

Registrations outlive any single transport: the connection manager reattaches
every entry, in registration order, each time a transport connects.
"""
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Iterator, List, Optional

Callback = Callable[..., Any]


@dataclass(frozen=True)
class ListenerRegistration:
    id: str
    event: str
    callback: Callback


def generate_listener_id() -> str:
    return uuid.uuid4().hex


class ListenerRegistry:
    def __init__(self):
        self._registrations: "OrderedDict[str, ListenerRegistration]" = OrderedDict()

    def add(self, event: str, callback: Callback) -> ListenerRegistration:
        """Record a listener under a fresh id. The same callback may be added more than once."""
        registration = ListenerRegistration(generate_listener_id(), event, callback)
        self._registrations[registration.id] = registration
        return registration

    def get(self, listener_id: str) -> Optional[ListenerRegistration]:
        return self._registrations.get(listener_id)

    def remove(self, listener_id: str) -> Optional[ListenerRegistration]:
        return self._registrations.pop(listener_id, None)

    def remove_event(self, event: str, callback: Optional[Callback] = None) -> List[ListenerRegistration]:
        """Remove every registration for ``event``, or only those using ``callback``."""
        removed = [
            r for r in self._registrations.values()
            if r.event == event and (callback is None or r.callback == callback)
        ]
        for registration in removed:
            del self._registrations[registration.id]
        return removed

    def clear(self) -> List[ListenerRegistration]:
        removed = list(self._registrations.values())
        self._registrations.clear()
        return removed

    def for_event(self, event: str) -> List[ListenerRegistration]:
        return [r for r in self._registrations.values() if r.event == event]

    def __iter__(self) -> Iterator[ListenerRegistration]:
        return iter(list(self._registrations.values()))

    def __len__(self) -> int:
        return len(self._registrations)

    def __contains__(self, listener_id: object) -> bool:
        return listener_id in self._registrations


class Subscription:
    """Handle for one registration; unsubscribes on ``unsubscribe()`` or on leaving a ``with`` block."""

    def __init__(self, manager, registration: ListenerRegistration):
        self._manager = manager
        self._registration = registration

    @property
    def id(self) -> str:
        return self._registration.id

    @property
    def event(self) -> str:
        return self._registration.event

    @property
    def active(self) -> bool:
        return self._registration.id in self._manager.registry

    def unsubscribe(self) -> bool:
        """Remove the registration. Returns False if it was already gone."""
        return self._manager.remove_listener_by_id(self._registration.id)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unsubscribe()

    def __repr__(self) -> str:
        return f"Subscription(id={self.id!r}, event={self.event!r}, active={self.active})"
