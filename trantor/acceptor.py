"""Listening socket that hands accepted connections to a callback."""

from __future__ import annotations

import errno
import logging
import os
import socket
from typing import Any, Callable, Optional

from .channel import Channel
from .inet_address import InetAddress
from .socket_ops import Socket

__all__ = ["Acceptor", "NewConnectionCallback", "SockOptCallback"]

logger = logging.getLogger(__name__)

NewConnectionCallback = Callable[[socket.socket, InetAddress], None]
SockOptCallback = Callable[[socket.socket], None]


def _open_idle_fd() -> int:
    return os.open(os.devnull, os.O_RDONLY)


class Acceptor:
    """Binds a listening socket and accepts connections inside an event loop.

    ``new_connection_callback`` receives each accepted non-blocking socket
    and its peer address; without it, accepted sockets are closed at once.
    """

    def __init__(self, loop: Any, addr: InetAddress, reuse_addr: bool = True,
                 reuse_port: bool = True) -> None:
        self._loop = loop
        self._closed = False
        self._idle_fd = _open_idle_fd()
        self._sock = Socket(Socket.create_nonblocking(addr.family()))
        try:
            self._sock.set_reuse_addr(reuse_addr)
            self._sock.set_reuse_port(reuse_port)
            self._sock.bind_address(addr)
            self._addr = addr
            if addr.to_port() == 0:
                self._addr = Socket.local_addr(self._sock.sock)
        except BaseException:
            self._sock.close()
            os.close(self._idle_fd)
            self._idle_fd = -1
            raise
        self._channel = Channel(loop, self._sock.fd())
        self._channel.read_callback = self._read_callback
        self.new_connection_callback: Optional[NewConnectionCallback] = None
        self.before_listen_sockopt_callback: Optional[SockOptCallback] = None
        self.after_accept_sockopt_callback: Optional[SockOptCallback] = None

    def addr(self) -> InetAddress:
        """Return the bound address, with the real port if 0 was asked for."""
        return self._addr

    def listen(self) -> None:
        """Start listening; must be called in the loop's thread."""
        self._loop.assert_in_loop_thread()
        if self.before_listen_sockopt_callback is not None:
            self.before_listen_sockopt_callback(self._sock.sock)
        self._sock.listen()
        self._channel.enable_reading()

    def close(self) -> None:
        """Stop watching the socket and close it."""
        if self._closed:
            return
        self._closed = True
        self._channel.disable_all()
        self._channel.remove()
        self._sock.close()
        if self._idle_fd >= 0:
            os.close(self._idle_fd)
            self._idle_fd = -1

    def __enter__(self) -> "Acceptor":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _read_callback(self) -> None:
        try:
            conn, peer = self._sock.accept()
        except BlockingIOError:
            return
        except OSError as exc:
            logger.error("Acceptor.read_callback: %s", exc)
            if exc.errno == errno.EMFILE and self._idle_fd >= 0:
                # Free a descriptor to accept and drop the pending connection.
                os.close(self._idle_fd)
                try:
                    extra, _ = self._sock.sock.accept()
                    extra.close()
                except OSError:
                    pass
                self._idle_fd = _open_idle_fd()
            return
        if self.after_accept_sockopt_callback is not None:
            self.after_accept_sockopt_callback(conn)
        if self.new_connection_callback is not None:
            self.new_connection_callback(conn, peer)
        else:
            conn.close()

    def __repr__(self) -> str:
        return f"Acceptor({self._addr.to_ip_port()})"