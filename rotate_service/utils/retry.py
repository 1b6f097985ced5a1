import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from tenacity import stop_after_attempt, wait_exponential, wait_fixed, wait_random


class Clock(ABC):
    """Time source for sleeps, swappable in tests."""

    @abstractmethod
    def sleep(self, seconds: float) -> None:
        ...

    @abstractmethod
    def now(self) -> float:
        ...


class SystemClock(Clock):
    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)

    def now(self) -> float:
        return time.time()


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try a step and how long to wait in between.

    backoff=1.0 gives a fixed delay; anything larger grows the delay
    geometrically. jitter_seconds adds a uniform random extra wait.
    """

    max_attempts: int = 4
    delay_seconds: float = 60.0
    backoff: float = 1.0
    jitter_seconds: float = 0.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay_seconds < 0 or self.jitter_seconds < 0:
            raise ValueError("delays must not be negative")
        if self.backoff < 1:
            raise ValueError("backoff must be at least 1.0")

    def stop(self):
        return stop_after_attempt(self.max_attempts)

    def wait(self):
        """tenacity wait strategy for this policy."""
        if self.backoff == 1.0:
            strategy = wait_fixed(self.delay_seconds)
        else:
            strategy = wait_exponential(multiplier=self.delay_seconds, exp_base=self.backoff)
        if self.jitter_seconds:
            strategy = strategy + wait_random(0, self.jitter_seconds)
        return strategy
