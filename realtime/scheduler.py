"""Timer abstraction used by the connection manager.

The manager never calls ``loop.call_later`` directly, so tests can swap in a
scheduler that records delays and fires timers by hand.
"""
import asyncio
from typing import Any, Callable


class Scheduler:
    """Schedules plain callbacks. Returned handles expose ``cancel()``."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any):
        raise NotImplementedError


class LoopScheduler(Scheduler):
    """Scheduler backed by the running asyncio event loop."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback, *args)
