"""Asynchronous host name resolution with a shared, time-limited cache."""

from __future__ import annotations

import logging
import os
import socket
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional

from .inet_address import InetAddress

__all__ = ["Resolver", "is_cares_used", "new_resolver"]

logger = logging.getLogger(__name__)

Callback = Callable[[InetAddress], None]
ResultsCallback = Callable[[list[InetAddress]], None]


class Resolver:
    """Resolves host names on a shared pool of worker threads.

    Results are cached for ``timeout`` seconds (0: for ever) in a cache
    shared by all resolvers. Callbacks run in a worker thread, or in the
    caller's thread when the answer is already cached. A failed lookup
    yields the address 0.0.0.0:0 and is not cached.
    """

    _cache: dict[str, tuple[InetAddress, float]] = {}
    _cache_lock = threading.Lock()
    _executor: Optional[ThreadPoolExecutor] = None
    _executor_lock = threading.Lock()

    def __init__(self, timeout: int = 60) -> None:
        self._timeout = timeout

    @classmethod
    def clear_cache(cls) -> None:
        with cls._cache_lock:
            cls._cache.clear()

    @classmethod
    def _queue(cls) -> ThreadPoolExecutor:
        with cls._executor_lock:
            if cls._executor is None:
                cls._executor = ThreadPoolExecutor(
                    max_workers=max(8, os.cpu_count() or 1),
                    thread_name_prefix="Dns Queue")
            return cls._executor

    def resolve(self, hostname: str, callback: Callback) -> None:
        """Resolve ``hostname`` and pass the first address to ``callback``."""
        cached = self._cached(hostname)
        if cached is not None:
            callback(cached)
            return
        self._queue().submit(self._resolve_task, hostname, callback)

    def resolve_all(self, hostname: str, callback: ResultsCallback) -> None:
        """Resolve ``hostname`` and pass a list of addresses to ``callback``."""
        self.resolve(hostname, lambda inet: callback([inet]))

    def _cached(self, hostname: str) -> Optional[InetAddress]:
        with self._cache_lock:
            entry = self._cache.get(hostname)
        if entry is None:
            return None
        inet, stamp = entry
        if self._timeout == 0 or stamp + self._timeout > time.time():
            return inet
        return None

    def _resolve_task(self, hostname: str, callback: Callback) -> None:
        try:
            cached = self._cached(hostname)
            if cached is not None:
                callback(cached)
                return
            inet = self._lookup(hostname)
            if inet is None:
                callback(InetAddress())
                return
            with self._cache_lock:
                self._cache[hostname] = (inet, time.time())
            callback(inet)
        except Exception:
            logger.exception("resolver callback for %r failed", hostname)

    @staticmethod
    def _lookup(hostname: str) -> Optional[InetAddress]:
        try:
            results = socket.getaddrinfo(hostname, None, socket.AF_UNSPEC,
                                         socket.SOCK_STREAM, 0, socket.AI_PASSIVE)
        except (OSError, UnicodeError) as exc:
            logger.error("InetAddress::resolve %r: %s", hostname, exc)
            return None
        if not results:
            logger.error("InetAddress::resolve %r: no result", hostname)
            return None
        family, _, _, _, sockaddr = results[0]
        if family in (socket.AF_INET, socket.AF_INET6):
            return InetAddress.from_sockaddr(family, sockaddr)
        return InetAddress()


def new_resolver(loop: Any = None, timeout: int = 60) -> Resolver:
    """Create a resolver; the loop is accepted for interface compatibility."""
    return Resolver(timeout)


def is_cares_used() -> bool:
    """Return whether a c-ares based resolver is in use; it never is here."""
    return False