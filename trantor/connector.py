"""Non-blocking outgoing TCP connection attempts with optional retry."""

from __future__ import annotations

import enum
import errno
import logging
import os
import socket
from typing import Any, Callable, Optional

from .channel import Channel
from .inet_address import InetAddress
from .socket_ops import Socket

__all__ = ["Connector", "Status"]

logger = logging.getLogger(__name__)

INIT_RETRY_DELAY_MS = 500
MAX_RETRY_DELAY_MS = 30 * 1000

_CONNECTING_ERRNOS = {0, errno.EINPROGRESS, errno.EINTR, errno.EISCONN}
if errno.EWOULDBLOCK != errno.EAGAIN:
    _CONNECTING_ERRNOS.add(errno.EWOULDBLOCK)
if hasattr(errno, "WSAEWOULDBLOCK"):
    _CONNECTING_ERRNOS.add(errno.WSAEWOULDBLOCK)

_RETRY_ERRNOS = {errno.EAGAIN, errno.EADDRINUSE, errno.EADDRNOTAVAIL,
                 errno.ECONNREFUSED, errno.ENETUNREACH}


class Status(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class Connector:
    """Connects to a server through an event loop.

    On success ``new_connection_callback`` receives the connected socket,
    which then belongs to the callee. ``error_callback`` is called when an
    attempt fails; with ``retry`` the attempt is repeated with a delay that
    doubles from 0.5 s up to 30 s.
    """

    def __init__(self, loop: Any, addr: InetAddress, retry: bool = True) -> None:
        self._loop = loop
        self._server_addr = addr
        self._retry = retry
        self._connect = False
        self._status = Status.DISCONNECTED
        self._retry_interval_ms = INIT_RETRY_DELAY_MS
        self._max_retry_interval_ms = MAX_RETRY_DELAY_MS
        self._channel: Optional[Channel] = None
        self._sock: Optional[socket.socket] = None
        self.new_connection_callback: Optional[Callable[[socket.socket], None]] = None
        self.error_callback: Optional[Callable[[], None]] = None
        self.sockopt_callback: Optional[Callable[[socket.socket], None]] = None

    def server_address(self) -> InetAddress:
        return self._server_addr

    def status(self) -> Status:
        return self._status

    def start(self) -> None:
        """Begin connecting in the loop's thread."""
        self._connect = True
        self._loop.run_in_loop(self._start_in_loop)

    def restart(self) -> None:
        """Drop any attempt in progress and connect again from the start."""
        self._loop.run_in_loop(self._restart_in_loop)

    def stop(self) -> None:
        """Abandon the current attempt and any pending retry."""
        self._connect = False
        self._status = Status.DISCONNECTED
        if self._loop.is_in_loop_thread():
            self._stop_in_loop()
        else:
            self._loop.queue_in_loop(self._stop_in_loop)

    def _stop_in_loop(self) -> None:
        self._remove_and_reset_channel()
        if self._sock is not None:
            self._close_sock(self._sock)

    def _restart_in_loop(self) -> None:
        self._stop_in_loop()
        self._status = Status.DISCONNECTED
        self._retry_interval_ms = INIT_RETRY_DELAY_MS
        self._connect = True
        self._start_in_loop()

    def _start_in_loop(self) -> None:
        self._loop.assert_in_loop_thread()
        if self._status is not Status.DISCONNECTED:
            raise RuntimeError(f"connector is {self._status.value}")
        if self._connect:
            self._connect_now()
        else:
            logger.debug("do not connect")

    def _connect_now(self) -> None:
        sock = Socket.create_nonblocking(self._server_addr.family())
        self._sock = sock
        if self.sockopt_callback is not None:
            self.sockopt_callback(sock)
        try:
            err = Socket.connect(sock, self._server_addr)
        except OSError as exc:
            err = exc.errno if exc.errno is not None else -1
        if err in _CONNECTING_ERRNOS:
            logger.debug("connecting")
            self._connecting(sock)
        elif err in _RETRY_ERRNOS:
            if self._retry:
                self._retry_later(sock)
        else:
            logger.error("connect error in Connector.start_in_loop %d: %s",
                         err, os.strerror(err) if err > 0 else "unknown")
            self._close_sock(sock)
            if self.error_callback is not None:
                self.error_callback()

    def _connecting(self, sock: socket.socket) -> None:
        self._status = Status.CONNECTING
        channel = Channel(self._loop, sock.fileno())
        channel.write_callback = self._handle_write
        channel.error_callback = self._handle_error
        channel.close_callback = self._handle_error
        self._channel = channel
        channel.enable_writing()

    def _remove_and_reset_channel(self) -> Optional[socket.socket]:
        channel = self._channel
        if channel is None:
            return None
        channel.disable_all()
        channel.remove()
        self._channel = None
        return self._sock

    def _close_sock(self, sock: socket.socket) -> None:
        sock.close()
        if self._sock is sock:
            self._sock = None

    def _fail(self, sock: socket.socket) -> None:
        if self._retry:
            self._retry_later(sock)
        else:
            self._close_sock(sock)
        if self.error_callback is not None:
            self.error_callback()

    def _handle_write(self) -> None:
        if self._status is not Status.CONNECTING:
            return
        sock = self._remove_and_reset_channel()
        if sock is None:
            return
        err = Socket.get_socket_error(sock)
        if err:
            logger.warning("Connector.handle_write - SO_ERROR = %d %s",
                           err, os.strerror(err))
            self._fail(sock)
        elif Socket.is_self_connect(sock):
            logger.warning("Connector.handle_write - Self connect")
            self._fail(sock)
        else:
            self._status = Status.CONNECTED
            self._sock = None
            if self._connect and self.new_connection_callback is not None:
                self.new_connection_callback(sock)
            else:
                sock.close()

    def _handle_error(self) -> None:
        if self._status is not Status.CONNECTING:
            return
        self._status = Status.DISCONNECTED
        sock = self._remove_and_reset_channel()
        if sock is None:
            return
        err = Socket.get_socket_error(sock)
        logger.debug("SO_ERROR = %d %s", err, os.strerror(err) if err else "")
        self._fail(sock)

    def _retry_later(self, sock: socket.socket) -> None:
        self._close_sock(sock)
        self._status = Status.DISCONNECTED
        if self._connect:
            logger.info("Connector.retry - Retry connecting to %s in %d milliseconds.",
                        self._server_addr.to_ip_port(), self._retry_interval_ms)
            self._loop.run_after(self._retry_interval_ms / 1000.0,
                                 self._start_in_loop)
            self._retry_interval_ms = min(self._retry_interval_ms * 2,
                                          self._max_retry_interval_ms)
        else:
            logger.debug("do not connect")

    def __repr__(self) -> str:
        return (f"Connector({self._server_addr.to_ip_port()}, "
                f"status={self._status.value})")