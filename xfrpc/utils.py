"""Address validation and network interface helpers."""

from __future__ import annotations

import fcntl
import ipaddress
import socket
import struct

IFNAMSIZ = 16
SIOCGIFHWADDR = 0x8927
_PREFERRED_IFNAMES = ("br-lan", "br0")
_HWADDR_OFFSET = 18


def is_valid_ip_address(ip_address) -> bool:
    """True if ip_address is a dotted-quad IPv4 address."""
    if not isinstance(ip_address, str):
        return False
    try:
        ipaddress.IPv4Address(ip_address)
    except ValueError:
        return False
    return True


def dns_unified(dname: str) -> str:
    """Lower-case the host part of a domain name (everything before '/').

    Raise ValueError if the host part holds no dot other than a final one.
    """
    if not dname:
        raise ValueError("empty domain name")
    host = dname.split("/", 1)[0]
    has_dot = any(
        ch == "." and i != len(dname) - 1 for i, ch in enumerate(host)
    )
    if not has_dot:
        raise ValueError(f"invalid domain name {dname!r}")
    return "".join(ch.lower() if ch.isascii() else ch for ch in host)


def get_net_ifname() -> str:
    """Pick the interface to identify this host by.

    A router bridge (br-lan or br0) wins; otherwise the last interface that
    is not the loopback. Raise OSError if there is none.
    """
    fallback = None
    for _, name in socket.if_nameindex():
        if name in _PREFERRED_IFNAMES:
            return name
        if name != "lo":
            fallback = name[:IFNAMSIZ]
    if fallback is None:
        raise OSError("no usable network interface")
    return fallback


def get_net_mac(ifname: str) -> str:
    """Hardware address of an interface as 12 upper-case hex digits."""
    if not ifname:
        raise ValueError("interface name required")
    request = struct.pack("256s", ifname.encode()[: IFNAMSIZ - 1])
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        reply = fcntl.ioctl(sock.fileno(), SIOCGIFHWADDR, request)
    return reply[_HWADDR_OFFSET:_HWADDR_OFFSET + 6].hex().upper()