"""SOCKS5 handshake handling for streams carried over the mux session."""

from __future__ import annotations

import enum
import ipaddress
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from xfrpc.tcpmux import MuxSession, MuxStream, RingBuffer, Writable

logger = logging.getLogger(__name__)

ATYP_IPV4 = 0x01
ATYP_DOMAIN = 0x03
ATYP_IPV6 = 0x04


class Socks5State(enum.IntEnum):
    INIT = 0
    HANDSHAKE = 1
    CONNECT = 2
    ESTABLISHED = 3


@dataclass
class Socks5Address:
    type: int
    addr: bytes
    port: int
    host: str


def is_socks5(buf: bytes) -> bool:
    """True if buf starts with a SOCKS5 CONNECT request header."""
    return len(buf) >= 3 and buf[0] == 0x05 and buf[1] == 0x01 and buf[2] == 0x00


def parse_socks5_addr(ring: RingBuffer, length: int) -> tuple[Socks5Address, int]:
    """Pop a SOCKS5 address from ring; return it with the bytes it took.

    Raise ValueError if the address type is unknown or length is too short.
    """
    if length <= 0:
        raise ValueError("socks5 address needs a positive length")
    atyp = ring.pop(1)[0]
    if atyp == ATYP_IPV4:
        if length < 7:
            raise ValueError("short ipv4 socks5 address")
        body = ring.pop(6)
        addr = body[:4]
        host = str(ipaddress.IPv4Address(addr))
        return Socks5Address(atyp, addr, int.from_bytes(body[4:6], "big"), host), 7
    if atyp == ATYP_IPV6:
        if length < 19:
            raise ValueError("short ipv6 socks5 address")
        body = ring.pop(18)
        addr = body[:16]
        host = str(ipaddress.IPv6Address(addr))
        return Socks5Address(atyp, addr, int.from_bytes(body[16:18], "big"), host), 19
    if atyp == ATYP_DOMAIN:
        if length < 2:
            raise ValueError("short domain socks5 address")
        size = ring.pop(1)[0]
        if length < 2 + size:
            raise ValueError("short domain socks5 address")
        body = ring.pop(size + 2)
        addr = body[:size]
        port = int.from_bytes(body[size:size + 2], "big")
        return Socks5Address(atyp, addr, port, addr.decode("latin-1")), 2 + size + 2
    raise ValueError(f"unknown socks5 address type {atyp}")


Connector = Callable[[Socks5Address], Optional[Writable]]


class Socks5Handler:
    """Drives the SOCKS5 exchange of one proxied stream.

    ``connect`` opens the connection to the requested target and returns a
    writable for it, or None on failure. The owner moves ``state`` to CONNECT
    (socks5) or ESTABLISHED (ss5) once that connection is up.
    """

    def __init__(
        self,
        session: MuxSession,
        stream: MuxStream,
        control: Writable,
        connect: Connector,
        state: Socks5State = Socks5State.INIT,
    ) -> None:
        self.session = session
        self.stream = stream
        self.control = control
        self.connect = connect
        self.state = state
        self.local: Optional[Writable] = None
        self.remote_addr: Optional[Socks5Address] = None

    def _open(self, address: Socks5Address) -> Optional[Writable]:
        try:
            conn = self.connect(address)
        except OSError as exc:
            logger.error("socks5_proxy_connect failed, type: %d: %s", address.type, exc)
            return None
        if conn is None:
            logger.error("socks5_proxy_connect failed, type: %d", address.type)
        return conn

    def _parse_and_connect(self, ring: RingBuffer, length: int) -> Optional[int]:
        try:
            address, offset = parse_socks5_addr(ring, length)
        except ValueError as exc:
            logger.error("parse socks5 addr failed: %s", exc)
            return None
        self.remote_addr = address
        self.local = self._open(address)
        if self.local is None:
            return None
        return offset

    def handle_socks5(self, ring: RingBuffer, length: int) -> int:
        """Consume socks5 bytes from ring; return how many were handled."""
        if self.state == Socks5State.CONNECT:
            if self.local is None:
                raise RuntimeError("socks5 stream connected without a target")
            ring.write_to(self.local, length)
            return length
        if self.state == Socks5State.INIT and length >= 3:
            greeting = ring.pop(3)
            if greeting != b"\x05\x01\x00":
                logger.error("handle client socks5 handshake failed")
                return 0
            self.session.stream_write(self.control, b"\x05\x00\x00", self.stream)
            self.state = Socks5State.HANDSHAKE
            return 3
        if self.state == Socks5State.HANDSHAKE and length >= 10:
            if not is_socks5(ring.pop(3)):
                logger.error("handle client socks5 request failed")
                return 0
            offset = self._parse_and_connect(ring, length)
            if offset is None:
                return 0
            if length != offset + 3:
                raise ValueError(
                    f"socks5 request length {length} does not match address size {offset}"
                )
            return length
        logger.error("not socks5 protocol, close client")
        close = getattr(self.local, "close", None)
        if close is not None:
            close()
        self.local = None
        return 0

    def handle_ss5(self, ring: RingBuffer, length: int) -> int:
        """Consume ss5 bytes (a bare target address, then data) from ring."""
        if self.state == Socks5State.ESTABLISHED:
            if self.local is None:
                raise RuntimeError("ss5 stream established without a target")
            ring.write_to(self.local, length)
            return length
        if self.state == Socks5State.INIT and length >= 7:
            offset = self._parse_and_connect(ring, length)
            return offset or 0
        return 0