import base64

import pytest

from xfrpc.udp import (
    MAX_DECODED_SIZE,
    base64_decode,
    base64_encode,
    handle_udp_packet,
    make_udp_packet,
)

SAMPLES = [b"", b"f", b"fo", b"foo", b"foob", b"fooba", b"foobar", bytes(range(256))]


@pytest.mark.parametrize("data", SAMPLES)
def test_encode_matches_standard_base64(data):
    assert base64_encode(data) == base64.b64encode(data).decode("ascii")


@pytest.mark.parametrize("data", SAMPLES)
def test_round_trip(data):
    assert base64_decode(base64_encode(data)) == data


def test_decode_accepts_bytes():
    encoded = base64_encode(b"payload").encode("ascii")
    assert base64_decode(encoded) == b"payload"


def test_decode_rejects_invalid_character():
    with pytest.raises(ValueError):
        base64_decode("ab!c")


def test_decode_rejects_trailing_bits():
    with pytest.raises(ValueError):
        base64_decode("QR")


def test_decode_without_padding():
    assert base64_decode(base64_encode(b"A").rstrip("=")) == b"A"


def test_make_udp_packet_fields():
    packet = make_udp_packet(b"hi", "127.0.0.1", 53)
    assert packet["content"] == base64_encode(b"hi")
    assert packet["raddr"] == {"addr": "127.0.0.1", "port": 53}


def test_make_udp_packet_rejects_empty():
    with pytest.raises(ValueError):
        make_udp_packet(b"", "127.0.0.1", 53)


def test_make_udp_packet_rejects_oversize():
    with pytest.raises(ValueError):
        make_udp_packet(b"x" * 1536, "127.0.0.1", 53)


def test_make_udp_packet_largest_accepted():
    packet = make_udp_packet(b"x" * 1533, "127.0.0.1", 53)
    assert base64_decode(packet["content"]) == b"x" * 1533


def test_handle_udp_packet_round_trip():
    packet = make_udp_packet(b"\x00\x01datagram", "10.0.0.1", 9000)
    assert handle_udp_packet(packet["content"]) == b"\x00\x01datagram"


def test_handle_udp_packet_rejects_empty():
    with pytest.raises(ValueError):
        handle_udp_packet("")


def test_handle_udp_packet_rejects_oversize():
    with pytest.raises(ValueError):
        handle_udp_packet(base64_encode(b"y" * MAX_DECODED_SIZE))


def test_handle_udp_packet_rejects_garbage():
    with pytest.raises(ValueError):
        handle_udp_packet("not base64!")