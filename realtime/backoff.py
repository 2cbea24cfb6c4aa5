"""Reconnect backoff policy and attempt budget."""
import random
from dataclasses import dataclass
from typing import Callable, Optional


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Delay before reconnect ``attempt`` (1-based): base * 2^(attempt-1)."""
    if attempt < 1:
        raise ValueError("attempt numbers start at 1")
    return base_delay * (2 ** (attempt - 1))


@dataclass
class BackoffPolicy:
    """Exponential backoff settings.

    Attributes:
        base_delay: Delay before the first reconnect attempt (seconds).
        max_attempts: Reconnect attempts allowed before giving up.
        jitter: Random jitter as a fraction of the computed delay; 0 disables it.
    """

    base_delay: float = 1.0
    max_attempts: int = 5
    jitter: float = 0.0

    def delay_for(self, attempt: int, rand: Optional[Callable[[float, float], float]] = None) -> float:
        delay = backoff_delay(attempt, self.base_delay)
        if self.jitter > 0:
            spread = delay * self.jitter
            delay += (rand or random.uniform)(-spread, spread)
        return max(0.0, delay)


@dataclass
class ReconnectBudget:
    """Counts scheduled reconnect attempts; ``attempts`` never exceeds ``max_attempts``."""

    max_attempts: int = 5
    attempts: int = 0

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def consume(self) -> int:
        """Take the next attempt and return its 1-based number."""
        if self.exhausted:
            raise RuntimeError("reconnect budget exhausted")
        self.attempts += 1
        return self.attempts

    def reset(self) -> None:
        self.attempts = 0
