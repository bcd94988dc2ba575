"""A thread-safe pool of reusable objects."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Callable, Generic, Iterator, TypeVar

T = TypeVar("T")


class ObjectPool(Generic[T]):
    """Hands out objects, creating new ones only when no idle one is left."""

    def __init__(self, factory: Callable[[], T]) -> None:
        self._factory = factory
        self._idle: list[T] = []
        self._lock = threading.Lock()

    def get_object(self) -> T:
        """Take an idle object, or create one if the pool is empty."""
        with self._lock:
            if self._idle:
                return self._idle.pop()
        return self._factory()

    def release(self, obj: T) -> None:
        """Give an object back to the pool for reuse."""
        with self._lock:
            self._idle.append(obj)

    @contextmanager
    def acquire(self) -> Iterator[T]:
        """Lend an object for the duration of a with block."""
        obj = self.get_object()
        try:
            yield obj
        finally:
            self.release(obj)

    def __len__(self) -> int:
        with self._lock:
            return len(self._idle)