"""Threads that each own and run one event loop, and pools of them."""

from __future__ import annotations

import itertools
import threading
from typing import Optional

from .event_loop import EventLoop

__all__ = ["EventLoopThread", "EventLoopThreadPool"]


class EventLoopThread:
    """A thread that creates an event loop and runs it once started.

    The loop exists as soon as the constructor returns; it starts looping
    when :meth:`run` is called.
    """

    def __init__(self, name: str = "EventLoopThread") -> None:
        self._name = name
        self._lock = threading.Lock()
        self._run_lock = threading.Lock()
        self._loop: Optional[EventLoop] = None
        self._error: Optional[BaseException] = None
        self._loop_created = threading.Event()
        self._run_requested = threading.Event()
        self._loop_started = threading.Event()
        self._ran = False
        self._thread = threading.Thread(target=self._loop_funcs, name=name,
                                        daemon=True)
        self._thread.start()
        self._loop_created.wait()
        if self._error is not None:
            self._thread.join()
            raise self._error

    @property
    def name(self) -> str:
        return self._name

    def loop(self) -> Optional[EventLoop]:
        """Return the thread's event loop, or None once it has exited."""
        with self._lock:
            return self._loop

    def run(self) -> None:
        """Start the loop and return once it is looping; later calls do nothing."""
        with self._run_lock:
            if self._ran:
                return
            self._ran = True
            self._run_requested.set()
            self._loop_started.wait()

    def wait(self) -> None:
        """Block until the loop has exited and the thread has finished."""
        self._thread.join()

    def close(self) -> None:
        """Quit the loop and wait for the thread to finish."""
        self.run()
        loop = self.loop()
        if loop is not None:
            loop.quit()
        if threading.current_thread() is not self._thread:
            self._thread.join()

    def __enter__(self) -> "EventLoopThread":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _loop_funcs(self) -> None:
        try:
            loop = EventLoop()
        except BaseException as exc:
            self._error = exc
            self._loop_created.set()
            return
        loop.queue_in_loop(self._loop_started.set)
        with self._lock:
            self._loop = loop
        self._loop_created.set()
        self._run_requested.wait()
        try:
            loop.loop()
        finally:
            with self._lock:
                self._loop = None
            self._loop_started.set()
            loop.close()

    def __repr__(self) -> str:
        return f"EventLoopThread(name={self._name!r})"


class EventLoopThreadPool:
    """A fixed set of event loop threads handed out in round-robin order."""

    def __init__(self, thread_num: int,
                 name: str = "EventLoopThreadPool") -> None:
        if thread_num < 0:
            raise ValueError("thread_num must not be negative")
        self._threads = [EventLoopThread(name) for _ in range(thread_num)]
        self._counter = itertools.count()
        self._counter_lock = threading.Lock()

    def start(self) -> None:
        """Run every loop in the pool; does not block."""
        for thread in self._threads:
            thread.run()

    def wait(self) -> None:
        """Block until every loop in the pool has exited."""
        for thread in self._threads:
            thread.wait()

    def close(self) -> None:
        """Quit every loop and wait for its thread."""
        for thread in self._threads:
            thread.close()

    def __enter__(self) -> "EventLoopThreadPool":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def __len__(self) -> int:
        return len(self._threads)

    def next_loop(self) -> Optional[EventLoop]:
        """Return the next loop in turn, or None if the pool is empty."""
        if not self._threads:
            return None
        with self._counter_lock:
            index = next(self._counter)
        return self._threads[index % len(self._threads)].loop()

    def get_loop(self, index: int) -> Optional[EventLoop]:
        """Return the loop at ``index``, or None if there is no such loop."""
        if 0 <= index < len(self._threads):
            return self._threads[index].loop()
        return None

    def loops(self) -> list[Optional[EventLoop]]:
        return [thread.loop() for thread in self._threads]