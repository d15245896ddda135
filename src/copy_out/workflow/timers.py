"""Wall-clock deadline shared by every wait in one execution."""

import threading
import time
from typing import Callable

from ..core.exceptions import ExecutionTimeoutError


class ExecutionTimer:
    """
    Tracks the overall job deadline.

    All suspension (waiting for the destination to become writable, waiting
    between thaw polls) goes through `sleep`, which never sleeps past the
    deadline: it sleeps what is left and then raises ExecutionTimeoutError.
    """

    def __init__(
        self,
        timeout_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self._clock = clock
        self._sleep = sleep
        self.timeout_seconds = timeout_seconds
        self.deadline = clock() + timeout_seconds
        self._expired = threading.Event()

    @property
    def remaining(self) -> float:
        return max(0.0, self.deadline - self._clock())

    @property
    def expired(self) -> bool:
        return self._expired.is_set() or self._clock() >= self.deadline

    def check(self) -> None:
        if self.expired:
            self._expired.set()
            raise ExecutionTimeoutError(
                f"Execution exceeded its timeout of {self.timeout_seconds:.0f} seconds"
            )

    def sleep(self, seconds: float) -> None:
        self.check()
        remaining = self.remaining
        if seconds >= remaining:
            self._sleep(remaining)
            self._expired.set()
            self.check()
        self._sleep(seconds)
