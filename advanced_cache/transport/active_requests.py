from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class ActiveRequests:
    """In-flight request gauge with a high-water mark, shared by HTTP handlers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0
        self._peak = 0

    def increment(self) -> None:
        with self._lock:
            self._value += 1
            self._peak = max(self._peak, self._value)

    def decrement(self) -> None:
        with self._lock:
            self._value -= 1

    @contextmanager
    def tracking(self) -> Iterator[None]:
        self.increment()
        try:
            yield
        finally:
            self.decrement()

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    @property
    def peak(self) -> int:
        with self._lock:
            return self._peak
