"""Reactor channels: a file descriptor with its watched events and callbacks."""

from __future__ import annotations

import enum
import weakref
from typing import Any, Callable, Optional, Protocol

EventCallback = Callable[[], None]


class Event(enum.IntFlag):
    """Poll event bits, with the values poll(2) uses."""

    NONE = 0
    IN = 0x001
    PRI = 0x002
    OUT = 0x004
    ERR = 0x008
    HUP = 0x010
    NVAL = 0x020
    RDHUP = 0x2000
    READ = IN | PRI
    WRITE = OUT


class _Loop(Protocol):
    def update_channel(self, channel: "Channel") -> None: ...

    def remove_channel(self, channel: "Channel") -> None: ...


class Channel:
    """Watches one file descriptor for an event loop.

    Callbacks are plain attributes; set the ones that are wanted. When
    ``event_callback`` is set, it replaces all the others.
    """

    def __init__(self, loop: _Loop, fd: int) -> None:
        self.loop = loop
        self._fd = fd
        self.events = Event.NONE
        self.revents = Event.NONE
        self.index = -1
        self.added_to_loop = False
        self.read_callback: Optional[EventCallback] = None
        self.write_callback: Optional[EventCallback] = None
        self.close_callback: Optional[EventCallback] = None
        self.error_callback: Optional[EventCallback] = None
        self.event_callback: Optional[EventCallback] = None
        self._tie: Optional[weakref.ref] = None

    @property
    def fd(self) -> int:
        return self._fd

    def is_none_event(self) -> bool:
        return self.events == Event.NONE

    def is_reading(self) -> bool:
        return bool(self.events & Event.READ)

    def is_writing(self) -> bool:
        return bool(self.events & Event.WRITE)

    def enable_reading(self) -> None:
        self.events |= Event.READ
        self._update()

    def disable_reading(self) -> None:
        self.events &= ~Event.READ
        self._update()

    def enable_writing(self) -> None:
        self.events |= Event.WRITE
        self._update()

    def disable_writing(self) -> None:
        self.events &= ~Event.WRITE
        self._update()

    def disable_all(self) -> None:
        self.events = Event.NONE
        self._update()

    def update_events(self, events: int) -> None:
        self.events = Event(events)
        self._update()

    def remove(self) -> None:
        """Take the channel out of its loop's poller; all events must be off."""
        if self.events != Event.NONE:
            raise RuntimeError("cannot remove a channel with events enabled")
        self.added_to_loop = False
        self.loop.remove_channel(self)

    def tie(self, obj: Any) -> None:
        """Only run callbacks while ``obj`` is alive; a weak reference is kept."""
        self._tie = weakref.ref(obj)

    def handle_event(self) -> None:
        """Dispatch the events in ``revents`` to the callbacks."""
        if self.events == Event.NONE:
            return
        if self._tie is not None:
            guard = self._tie()
            if guard is None:
                return
            self._handle_event_safely()
            del guard
        else:
            self._handle_event_safely()

    def _update(self) -> None:
        self.loop.update_channel(self)

    def _handle_event_safely(self) -> None:
        if self.event_callback is not None:
            self.event_callback()
            return
        revents = self.revents
        if (revents & Event.HUP) and not (revents & Event.IN):
            if self.close_callback is not None:
                self.close_callback()
        if revents & (Event.NVAL | Event.ERR):
            if self.error_callback is not None:
                self.error_callback()
        if revents & (Event.IN | Event.PRI | Event.RDHUP):
            if self.read_callback is not None:
                self.read_callback()
        if revents & Event.OUT:
            if self.write_callback is not None:
                self.write_callback()

    def __repr__(self) -> str:
        return f"Channel(fd={self._fd}, events={self.events!r})"