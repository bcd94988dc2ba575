"""IPv4/IPv6 endpoint addresses (IP plus port)."""

from __future__ import annotations

import socket
import struct
from typing import Any

_IPV4_ANY = bytes(4)
_IPV4_LOOPBACK = socket.inet_pton(socket.AF_INET, "127.0.0.1")
_IPV6_ANY = bytes(16)
_IPV6_LOOPBACK = socket.inet_pton(socket.AF_INET6, "::1")
_V4_MAPPED_PREFIX = bytes(10) + b"\xff\xff"


def _is_private_v4(value: int) -> bool:
    return (
        0x0A000000 <= value <= 0x0AFFFFFF
        or 0xAC100000 <= value <= 0xAC1FFFFF
        or 0xC0A80000 <= value <= 0xC0A8FFFF
        or value == 0x7F000001
    )


class InetAddress:
    """An IPv4 or IPv6 endpoint.

    An address built from an IP string that cannot be parsed keeps a zeroed
    IP of the requested family and reports itself as unspecified.
    """

    __slots__ = ("_family", "_addr", "_port", "_flowinfo", "_scope_id",
                 "_ipv6", "_unspecified")

    def __init__(self, ip: str | None = None, port: int = 0,
                 ipv6: bool = False) -> None:
        if not 0 <= port <= 0xFFFF:
            raise ValueError(f"port out of range: {port}")
        self._family = socket.AF_INET6 if ipv6 else socket.AF_INET
        self._addr = _IPV6_ANY if ipv6 else _IPV4_ANY
        self._port = port
        self._flowinfo = 0
        self._scope_id = 0
        self._ipv6 = ipv6
        self._unspecified = True
        if ip is None:
            self._unspecified = False
            return
        try:
            self._addr = socket.inet_pton(self._family, ip)
        except (OSError, ValueError):
            return
        self._unspecified = False

    @classmethod
    def for_port(cls, port: int = 0, loopback_only: bool = False,
                 ipv6: bool = False) -> "InetAddress":
        """Return the wildcard (or loopback) address on the given port."""
        inet = cls(None, port, ipv6)
        if loopback_only:
            inet._addr = _IPV6_LOOPBACK if ipv6 else _IPV4_LOOPBACK
        return inet

    @classmethod
    def from_sockaddr(cls, family: int, sockaddr: tuple[Any, ...]) -> "InetAddress":
        """Build an address from a socket-module address tuple."""
        if family == socket.AF_INET:
            host, port = sockaddr[0], sockaddr[1]
            inet = cls(None, port, False)
            inet._addr = socket.inet_pton(socket.AF_INET, host)
            return inet
        if family == socket.AF_INET6:
            host, port = sockaddr[0], sockaddr[1]
            flowinfo = sockaddr[2] if len(sockaddr) > 2 else 0
            scope_id = sockaddr[3] if len(sockaddr) > 3 else 0
            inet = cls(None, port, True)
            inet._addr = socket.inet_pton(socket.AF_INET6, host.split("%", 1)[0])
            inet._flowinfo = flowinfo
            inet._scope_id = scope_id
            return inet
        raise ValueError(f"unsupported address family: {family}")

    def family(self) -> int:
        return self._family

    def is_ipv6(self) -> bool:
        return self._ipv6

    def is_unspecified(self) -> bool:
        return self._unspecified

    def sockaddr(self) -> tuple[Any, ...]:
        """Return an address tuple usable with bind() and connect()."""
        if self._family == socket.AF_INET6:
            return (self.to_ip(), self._port, self._flowinfo, self._scope_id)
        return (self.to_ip(), self._port)

    def to_ip(self) -> str:
        return socket.inet_ntop(self._family, self._addr)

    def to_ip_port(self) -> str:
        return f"{self.to_ip()}:{self._port}"

    def to_ip_net_endian(self) -> bytes:
        """Return the raw IP bytes in network byte order."""
        return self._addr

    def to_ip_port_net_endian(self) -> bytes:
        """Return the raw IP bytes followed by the port, network byte order."""
        return self._addr + struct.pack("!H", self._port)

    def to_port(self) -> int:
        return self._port

    def ip_net_endian(self) -> int:
        """Return the IPv4 address as a native integer holding network order."""
        if self._family != socket.AF_INET:
            raise ValueError("not an IPv4 address")
        return struct.unpack("=I", self._addr)[0]

    def ip6_net_endian(self) -> tuple[int, int, int, int]:
        """Return the IPv6 address as four native integers in network order."""
        if self._family != socket.AF_INET6:
            raise ValueError("not an IPv6 address")
        return struct.unpack("=4I", self._addr)

    def port_net_endian(self) -> int:
        """Return the port as a native integer holding network order."""
        return struct.unpack("=H", struct.pack("!H", self._port))[0]

    def _words(self) -> tuple[int, int, int, int]:
        return struct.unpack("!4I", self._addr)

    def is_intranet_ip(self) -> bool:
        if self._family == socket.AF_INET:
            return _is_private_v4(struct.unpack("!I", self._addr)[0])
        w0, w1, w2, w3 = self._words()
        if w0 == 0 and w1 == 0 and w2 == 0 and w3 == 1:
            return True
        prefix = w0 & 0xFFC00000
        if prefix in (0xFEC00000, 0xFE800000):
            return True
        if w0 == 0 and w1 == 0 and w2 == 0xFFFF:
            return _is_private_v4(w3)
        return False

    def is_loopback_ip(self) -> bool:
        if not self._ipv6:
            return self._addr == _IPV4_LOOPBACK
        if self._addr == _IPV6_LOOPBACK:
            return True
        return self._addr == _V4_MAPPED_PREFIX + _IPV4_LOOPBACK

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, InetAddress):
            return NotImplemented
        return (self._family, self._addr, self._port) == (
            other._family, other._addr, other._port)

    def __hash__(self) -> int:
        return hash((self._family, self._addr, self._port))

    def __str__(self) -> str:
        return self.to_ip_port()

    def __repr__(self) -> str:
        return f"InetAddress({self.to_ip()!r}, {self._port}, ipv6={self._ipv6})"