"""I/O multiplexing for an event loop."""

from __future__ import annotations

import select
import selectors
import time
from typing import Any

from .channel import Channel, Event

_NEW = -1
_ADDED = 1
_DELETED = 2

_POLL_NAMES = (
    (Event.IN, "POLLIN"),
    (Event.PRI, "POLLPRI"),
    (Event.OUT, "POLLOUT"),
    (Event.ERR, "POLLERR"),
    (Event.HUP, "POLLHUP"),
    (Event.NVAL, "POLLNVAL"),
    (Event.RDHUP, "POLLRDHUP"),
)
_POLL_BITS = [(flag, getattr(select, name)) for flag, name in _POLL_NAMES
              if hasattr(select, name)]


class _PollBackend:
    def __init__(self) -> None:
        self._poll = select.poll()
        self._registered: set[int] = set()

    @staticmethod
    def _to_native(events: Event) -> int:
        mask = 0
        for flag, native in _POLL_BITS:
            if events & flag:
                mask |= native
        return mask

    @staticmethod
    def _from_native(mask: int) -> Event:
        events = Event.NONE
        for flag, native in _POLL_BITS:
            if mask & native:
                events |= flag
        return events

    def register(self, fd: int, events: Event) -> None:
        self._poll.register(fd, self._to_native(events))
        self._registered.add(fd)

    def modify(self, fd: int, events: Event) -> None:
        self._poll.modify(fd, self._to_native(events))

    def unregister(self, fd: int) -> None:
        self._poll.unregister(fd)
        self._registered.discard(fd)

    def poll(self, timeout_ms: int) -> list[tuple[int, Event]]:
        timeout = None if timeout_ms < 0 else timeout_ms
        return [(fd, self._from_native(mask))
                for fd, mask in self._poll.poll(timeout)]

    def close(self) -> None:
        """Drop every registration held by the poll object."""
        for fd in list(self._registered):
            try:
                self._poll.unregister(fd)
            except (KeyError, ValueError, OSError):
                pass
        self._registered.clear()


class _SelectorBackend:
    def __init__(self) -> None:
        self._selector = selectors.DefaultSelector()

    @staticmethod
    def _to_native(events: Event) -> int:
        mask = 0
        if events & Event.READ:
            mask |= selectors.EVENT_READ
        if events & Event.WRITE:
            mask |= selectors.EVENT_WRITE
        return mask

    def register(self, fd: int, events: Event) -> None:
        self._selector.register(fd, self._to_native(events))

    def modify(self, fd: int, events: Event) -> None:
        self._selector.modify(fd, self._to_native(events))

    def unregister(self, fd: int) -> None:
        self._selector.unregister(fd)

    def poll(self, timeout_ms: int) -> list[tuple[int, Event]]:
        timeout = None if timeout_ms < 0 else timeout_ms / 1000.0
        if not self._selector.get_map():
            if timeout:
                time.sleep(timeout)
            return []
        ready = []
        for key, mask in self._selector.select(timeout):
            events = Event.NONE
            if mask & selectors.EVENT_READ:
                events |= Event.IN
            if mask & selectors.EVENT_WRITE:
                events |= Event.OUT
            ready.append((key.fd, events))
        return ready

    def close(self) -> None:
        self._selector.close()


def _new_backend() -> Any:
    if hasattr(select, "poll"):
        return _PollBackend()
    return _SelectorBackend()


class Poller:
    """Keeps the channels of one event loop and waits for their events."""

    def __init__(self, loop: Any) -> None:
        self.loop = loop
        self._channels: dict[int, Channel] = {}
        self._backend = _new_backend()

    def poll(self, timeout_ms: int) -> list[Channel]:
        """Wait up to ``timeout_ms`` (negative: forever); return active channels.

        Each returned channel has its ``revents`` set to what occurred.
        """
        active = []
        for fd, revents in self._backend.poll(timeout_ms):
            channel = self._channels.get(fd)
            if channel is None:
                continue
            channel.revents = revents
            active.append(channel)
        return active

    def update_channel(self, channel: Channel) -> None:
        """Register a channel or bring its watched events up to date."""
        fd = channel.fd
        index = channel.index
        if index == _NEW:
            if fd in self._channels:
                raise ValueError(f"fd {fd} already has a channel")
            self._channels[fd] = channel
        elif self._channels.get(fd) is not channel:
            raise ValueError(f"channel for fd {fd} is not managed here")
        if channel.is_none_event():
            if index == _ADDED:
                self._backend.unregister(fd)
            channel.index = _DELETED
        else:
            if index == _ADDED:
                self._backend.modify(fd, channel.events)
            else:
                self._backend.register(fd, channel.events)
            channel.index = _ADDED

    def remove_channel(self, channel: Channel) -> None:
        """Forget a channel; its events must all be disabled."""
        fd = channel.fd
        if self._channels.get(fd) is not channel:
            raise KeyError(fd)
        if not channel.is_none_event():
            raise ValueError("cannot remove a channel with events enabled")
        del self._channels[fd]
        if channel.index == _ADDED:
            self._backend.unregister(fd)
        channel.index = _NEW

    def reset_after_fork(self) -> None:
        """Rebuild the kernel-side state and register the channels again."""
        self._backend.close()
        self._backend = _new_backend()
        for fd, channel in self._channels.items():
            if channel.index == _ADDED:
                self._backend.register(fd, channel.events)

    def close(self) -> None:
        self._backend.close()
        self._channels.clear()