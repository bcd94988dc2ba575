"""A thin owner of a non-blocking TCP socket and the socket helpers."""

from __future__ import annotations

import logging
import socket
from typing import Optional

from .inet_address import InetAddress

__all__ = ["Socket"]

logger = logging.getLogger(__name__)


class Socket:
    """Owns a TCP socket and closes it when closed or collected."""

    @staticmethod
    def create_nonblocking(family: int) -> socket.socket:
        """Create a non-blocking, non-inheritable TCP socket."""
        sock = socket.socket(family, socket.SOCK_STREAM, socket.IPPROTO_TCP)
        sock.setblocking(False)
        sock.set_inheritable(False)
        return sock

    @staticmethod
    def get_socket_error(sock: socket.socket) -> int:
        """Return the pending SO_ERROR of a socket (0 when there is none)."""
        try:
            return sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        except OSError as exc:
            return exc.errno or 0

    @staticmethod
    def connect(sock: socket.socket, addr: InetAddress) -> int:
        """Start connecting; return 0 or the errno the attempt gave."""
        return sock.connect_ex(addr.sockaddr())

    @staticmethod
    def local_addr(sock: socket.socket) -> InetAddress:
        return InetAddress.from_sockaddr(sock.family, sock.getsockname())

    @staticmethod
    def peer_addr(sock: socket.socket) -> InetAddress:
        return InetAddress.from_sockaddr(sock.family, sock.getpeername())

    @staticmethod
    def is_self_connect(sock: socket.socket) -> bool:
        """Return True if the socket is connected to itself."""
        try:
            local = Socket.local_addr(sock)
            peer = Socket.peer_addr(sock)
        except (OSError, ValueError):
            return False
        return local == peer

    def __init__(self, sock: socket.socket) -> None:
        self._sock: Optional[socket.socket] = sock

    @property
    def sock(self) -> socket.socket:
        if self._sock is None:
            raise OSError("socket is closed")
        return self._sock

    def fd(self) -> int:
        return self._sock.fileno() if self._sock is not None else -1

    def bind_address(self, addr: InetAddress) -> None:
        """Bind to ``addr``; raises OSError if that fails."""
        try:
            self.sock.bind(addr.sockaddr())
        except OSError:
            logger.error("Bind address failed at %s", addr.to_ip_port())
            raise

    def listen(self) -> None:
        self.sock.listen(socket.SOMAXCONN)

    def accept(self) -> tuple[socket.socket, InetAddress]:
        """Accept one connection as a non-blocking socket and its peer address.

        Raises BlockingIOError when no connection is pending.
        """
        conn, address = self.sock.accept()
        conn.setblocking(False)
        conn.set_inheritable(False)
        return conn, InetAddress.from_sockaddr(conn.family, address)

    def close_write(self) -> None:
        """Shut down the writing direction; failures are only logged."""
        try:
            self.sock.shutdown(socket.SHUT_WR)
        except OSError:
            logger.exception("sockets::shutdownWrite")

    def read(self, size: int) -> bytes:
        return self.sock.recv(size)

    def set_tcp_no_delay(self, on: bool) -> None:
        self.sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, int(on))

    def set_reuse_addr(self, on: bool) -> None:
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, int(on))

    def set_reuse_port(self, on: bool) -> None:
        """Set SO_REUSEPORT where supported; failures are only logged."""
        option = getattr(socket, "SO_REUSEPORT", None)
        if option is None:
            if on:
                logger.error("SO_REUSEPORT is not supported.")
            return
        try:
            self.sock.setsockopt(socket.SOL_SOCKET, option, int(on))
        except OSError:
            if on:
                logger.exception("SO_REUSEPORT failed.")

    def set_keep_alive(self, on: bool) -> None:
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, int(on))

    def socket_error(self) -> int:
        return Socket.get_socket_error(self.sock)

    def close(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def __enter__(self) -> "Socket":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def __del__(self) -> None:
        sock = getattr(self, "_sock", None)
        if sock is not None:
            sock.close()

    def __repr__(self) -> str:
        return f"Socket(fd={self.fd()})"