"""A reactor event loop bound to one thread, with timers and task queues."""

from __future__ import annotations

import collections
import datetime
import heapq
import itertools
import logging
import math
import socket
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

from .channel import Channel
from .poller import Poller

__all__ = [
    "EventLoop",
    "EventLoopError",
    "INVALID_TIMER_ID",
    "get_event_loop_of_current_thread",
]

logger = logging.getLogger(__name__)

Func = Callable[[], None]
TimerId = int
INVALID_TIMER_ID: TimerId = 0

_POLL_TIME_MS = 10000

_loops_lock = threading.Lock()
_loops_by_thread: dict[int, "EventLoop"] = {}


class EventLoopError(RuntimeError):
    """Raised when an event loop is used from the wrong thread or state."""


def get_event_loop_of_current_thread() -> Optional["EventLoop"]:
    """Return the event loop owned by the calling thread, or None."""
    with _loops_lock:
        return _loops_by_thread.get(threading.get_ident())


@dataclass(order=True)
class _TimerEntry:
    when: float
    seq: int
    timer_id: TimerId = field(compare=False)


@dataclass
class _Timer:
    func: Func
    when: float
    interval: float


def _seconds(value: Union[float, int, datetime.timedelta]) -> float:
    if isinstance(value, datetime.timedelta):
        return value.total_seconds()
    return float(value)


class EventLoop:
    """An event loop that handles I/O events, timers and queued functions.

    A thread owns at most one event loop; the loop belongs to the thread
    that created it until it is moved with :meth:`move_to_current_thread`.
    """

    def __init__(self) -> None:
        ident = threading.get_ident()
        with _loops_lock:
            if ident in _loops_by_thread:
                raise EventLoopError("There is already an EventLoop in this thread")
            _loops_by_thread[ident] = self
        self._thread_id = ident
        self._looping = False
        self._quit = False
        self._calling_funcs = False
        self._event_handling = False
        self._closed = False
        self._funcs: collections.deque[Func] = collections.deque()
        self._funcs_on_quit: collections.deque[Func] = collections.deque()
        self._timers: dict[TimerId, _Timer] = {}
        self._timer_heap: list[_TimerEntry] = []
        self._timer_ids = itertools.count(1)
        self._timer_seq = itertools.count()
        self._id_lock = threading.Lock()
        self.index: Optional[int] = None
        self._poller = Poller(self)
        self._wakeup_reader, self._wakeup_writer = socket.socketpair()
        self._wakeup_reader.setblocking(False)
        self._wakeup_writer.setblocking(False)
        self._wakeup_channel = Channel(self, self._wakeup_reader.fileno())
        self._wakeup_channel.read_callback = self._wakeup_read
        self._wakeup_channel.enable_reading()

    # -- thread ownership -------------------------------------------------

    def is_in_loop_thread(self) -> bool:
        return self._thread_id == threading.get_ident()

    def assert_in_loop_thread(self) -> None:
        """Raise EventLoopError unless called from the loop's thread."""
        if not self.is_in_loop_thread():
            raise EventLoopError(
                "It is forbidden to run loop on threads other than event-loop thread")

    def move_to_current_thread(self) -> None:
        """Hand the loop over to the calling thread; it must not be running."""
        if self.is_running():
            raise EventLoopError("EventLoop cannot be moved when running")
        if self.is_in_loop_thread():
            logger.warning("This EventLoop is already in the current thread")
            return
        ident = threading.get_ident()
        with _loops_lock:
            if ident in _loops_by_thread:
                raise EventLoopError(
                    "There is already an EventLoop in this thread, "
                    "you cannot move another in")
            if _loops_by_thread.get(self._thread_id) is self:
                del _loops_by_thread[self._thread_id]
            _loops_by_thread[ident] = self
            self._thread_id = ident

    # -- state ------------------------------------------------------------

    def is_running(self) -> bool:
        return self._looping and not self._quit

    def is_calling_functions(self) -> bool:
        return self._calling_funcs

    # -- running ----------------------------------------------------------

    def loop(self) -> None:
        """Run until :meth:`quit` is called; blocks the calling thread.

        Functions registered with :meth:`run_on_quit` run afterwards even
        when a callback raised; the exception is then re-raised.
        """
        if self._looping:
            raise EventLoopError("EventLoop is already looping")
        self.assert_in_loop_thread()
        self._looping = True
        self._quit = False
        loop_exception: Optional[BaseException] = None
        try:
            try:
                while not self._quit:
                    active = self._poller.poll(self._poll_timeout_ms())
                    self._process_timers()
                    self._event_handling = True
                    for channel in active:
                        channel.handle_event()
                    self._event_handling = False
                    self._do_run_in_loop_funcs()
            finally:
                self._event_handling = False
                self._looping = False
        except Exception as exc:
            logger.warning("Exception thrown from event loop, rethrowing after "
                           "running functions on quit: %s", exc)
            loop_exception = exc
        while self._funcs_on_quit:
            self._funcs_on_quit.popleft()()
        with _loops_lock:
            if _loops_by_thread.get(threading.get_ident()) is self:
                del _loops_by_thread[threading.get_ident()]
        if loop_exception is not None:
            logger.warning("Rethrowing exception from event loop")
            raise loop_exception

    def quit(self) -> None:
        """Ask the loop to stop after the current iteration."""
        self._quit = True
        if not self.is_in_loop_thread():
            self._wakeup()

    def close(self) -> None:
        """Stop the loop, wait until it has exited and release its resources."""
        if self._closed:
            return
        self.quit()
        if self._looping and self.is_in_loop_thread():
            raise EventLoopError("cannot close an EventLoop from inside its loop")
        while self._looping:
            time.sleep(0.001)
        self._closed = True
        self._poller.close()
        self._wakeup_reader.close()
        self._wakeup_writer.close()
        with _loops_lock:
            for ident, loop in list(_loops_by_thread.items()):
                if loop is self:
                    del _loops_by_thread[ident]

    def __enter__(self) -> "EventLoop":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # -- functions --------------------------------------------------------

    def run_in_loop(self, func: Func) -> None:
        """Call ``func`` now if in the loop thread, otherwise queue it."""
        if self.is_in_loop_thread():
            func()
        else:
            self.queue_in_loop(func)

    def queue_in_loop(self, func: Func) -> None:
        """Queue ``func`` to be called by the loop after the current work."""
        self._funcs.append(func)
        if not self.is_in_loop_thread() or not self._looping:
            self._wakeup()

    def run_on_quit(self, func: Func) -> None:
        """Call ``func`` in the loop's thread once the loop has exited."""
        self._funcs_on_quit.append(func)

    def _do_run_in_loop_funcs(self) -> None:
        self._calling_funcs = True
        try:
            while self._funcs:
                self._funcs.popleft()()
        finally:
            self._calling_funcs = False

    # -- timers -----------------------------------------------------------

    def run_at(self, when: Union[datetime.datetime, float], func: Func) -> TimerId:
        """Call ``func`` at a wall-clock time (datetime or epoch seconds)."""
        if isinstance(when, datetime.datetime):
            target = when.timestamp()
        else:
            target = float(when)
        delay = target - time.time()
        return self._add_timer(func, time.monotonic() + delay, 0.0)

    def run_after(self, delay: Union[float, datetime.timedelta], func: Func) -> TimerId:
        """Call ``func`` after ``delay`` seconds."""
        return self._add_timer(func, time.monotonic() + _seconds(delay), 0.0)

    def run_every(self, interval: Union[float, datetime.timedelta],
                  func: Func) -> TimerId:
        """Call ``func`` every ``interval`` seconds until invalidated."""
        seconds = _seconds(interval)
        return self._add_timer(func, time.monotonic() + seconds, seconds)

    def invalidate_timer(self, timer_id: TimerId) -> None:
        """Cancel a timer; this only has an effect while the loop runs."""
        if self.is_running():
            self.run_in_loop(lambda: self._timers.pop(timer_id, None))

    def _add_timer(self, func: Func, when: float, interval: float) -> TimerId:
        with self._id_lock:
            timer_id = next(self._timer_ids)
        timer = _Timer(func, when, interval)

        def insert() -> None:
            self._timers[timer_id] = timer
            self._push_timer(timer_id, timer.when)

        self.run_in_loop(insert)
        return timer_id

    def _push_timer(self, timer_id: TimerId, when: float) -> None:
        heapq.heappush(self._timer_heap,
                       _TimerEntry(when, next(self._timer_seq), timer_id))

    def _poll_timeout_ms(self) -> int:
        while self._timer_heap:
            entry = self._timer_heap[0]
            timer = self._timers.get(entry.timer_id)
            if timer is None or timer.when != entry.when:
                heapq.heappop(self._timer_heap)
                continue
            remaining = (entry.when - time.monotonic()) * 1000.0
            return max(0, min(_POLL_TIME_MS, math.ceil(remaining)))
        return _POLL_TIME_MS

    def _process_timers(self) -> None:
        now = time.monotonic()
        due: list[tuple[TimerId, _Timer]] = []
        while self._timer_heap and self._timer_heap[0].when <= now:
            entry = heapq.heappop(self._timer_heap)
            timer = self._timers.get(entry.timer_id)
            if timer is None or timer.when != entry.when:
                continue
            due.append((entry.timer_id, timer))
        for timer_id, timer in due:
            if self._timers.get(timer_id) is not timer:
                continue
            if timer.interval <= 0:
                del self._timers[timer_id]
            timer.func()
            if timer.interval > 0 and self._timers.get(timer_id) is timer:
                timer.when = time.monotonic() + timer.interval
                self._push_timer(timer_id, timer.when)

    # -- channels ---------------------------------------------------------

    def update_channel(self, channel: Channel) -> None:
        if channel.loop is not self:
            raise ValueError("channel belongs to another loop")
        self.assert_in_loop_thread()
        self._poller.update_channel(channel)

    def remove_channel(self, channel: Channel) -> None:
        if channel.loop is not self:
            raise ValueError("channel belongs to another loop")
        self.assert_in_loop_thread()
        self._poller.remove_channel(channel)

    def reset_after_fork(self) -> None:
        """Make the loop usable again in a child process after fork()."""
        self._poller.reset_after_fork()

    # -- wakeup -----------------------------------------------------------

    def _wakeup(self) -> None:
        try:
            self._wakeup_writer.send(b"\x01" * 8)
        except (BlockingIOError, OSError):
            pass

    def _wakeup_read(self) -> None:
        try:
            while self._wakeup_reader.recv(4096):
                pass
        except BlockingIOError:
            pass
        except OSError:
            logger.exception("wakeup read error")