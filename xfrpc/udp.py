"""UDP proxy payload handling: datagrams travel base64-encoded inside packets."""

from __future__ import annotations

import logging
from typing import Union

logger = logging.getLogger(__name__)

BASE64_TABLE = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
MAX_DECODED_SIZE = 1500
MAX_ENCODED_SIZE = 2048

_INDEX = {ch: i for i, ch in enumerate(BASE64_TABLE)}
_U32 = 0xFFFFFFFF


def base64_encode(data: bytes) -> str:
    """Encode bytes as padded standard base64."""
    out: list[str] = []
    acc = 0
    bits = 0
    for byte in data:
        acc = ((acc << 8) | byte) & _U32
        bits += 8
        while bits >= 6:
            bits -= 6
            out.append(BASE64_TABLE[(acc >> bits) & 0x3F])
    if bits:
        out.append(BASE64_TABLE[(acc << (6 - bits)) & 0x3F])
        bits -= 6
    while bits < 0:
        out.append("=")
        bits += 2
    return "".join(out)


def base64_decode(text: Union[str, bytes]) -> bytes:
    """Decode standard base64; raise ValueError on bad characters or stray bits."""
    if isinstance(text, (bytes, bytearray)):
        text = bytes(text).decode("latin-1")
    out = bytearray()
    acc = 0
    bits = 0
    for ch in text:
        if ch == "=":
            acc = (acc << 6) & _U32
            bits += 6
            if bits >= 8:
                bits -= 8
            continue
        index = _INDEX.get(ch)
        if index is None:
            raise ValueError(f"invalid base64 character {ch!r}")
        acc = ((acc << 6) | index) & _U32
        bits += 6
        if bits >= 8:
            bits -= 8
            out.append((acc >> bits) & 0xFF)
    if acc & ((1 << bits) - 1):
        raise ValueError("base64 input has non-zero trailing bits")
    return bytes(out)


def make_udp_packet(data: bytes, local_ip: str, local_port: int) -> dict:
    """Wrap a datagram read from the local service for sending to the server."""
    content = base64_encode(data)
    if not 0 < len(content) < MAX_ENCODED_SIZE:
        raise ValueError(
            f"encoded udp payload size {len(content)} outside (0, {MAX_ENCODED_SIZE})"
        )
    return {
        "content": content,
        "raddr": {"addr": local_ip, "port": local_port},
    }


def handle_udp_packet(content: Union[str, bytes]) -> bytes:
    """Decode the payload of a packet from the server for the local service."""
    payload = base64_decode(content)
    if not 0 < len(payload) < MAX_DECODED_SIZE:
        raise ValueError(
            f"decoded udp payload size {len(payload)} outside (0, {MAX_DECODED_SIZE})"
        )
    return payload