from unittest import mock

import pytest

from xfrpc.utils import dns_unified, get_net_ifname, get_net_mac, is_valid_ip_address


@pytest.mark.parametrize("addr", ["127.0.0.1", "0.0.0.0", "255.255.255.255", "10.1.2.3"])
def test_valid_ipv4(addr):
    assert is_valid_ip_address(addr) is True


@pytest.mark.parametrize("addr", ["256.1.1.1", "example.com", "::1", "1.2.3", "", None])
def test_invalid_ipv4(addr):
    assert is_valid_ip_address(addr) is False


def test_dns_unified_lowercases_host():
    assert dns_unified("wWw.Example.COM/Path") == "www.example.com"


def test_dns_unified_keeps_lowercase():
    assert dns_unified("api.example.com") == "api.example.com"


@pytest.mark.parametrize("name", ["localhost", "example.", "", "host/a.b"])
def test_dns_unified_rejects(name):
    with pytest.raises(ValueError):
        dns_unified(name)


def test_ifname_prefers_bridge():
    with mock.patch("socket.if_nameindex", return_value=[(1, "lo"), (2, "eth0"), (3, "br-lan"), (4, "wlan0")]):
        assert get_net_ifname() == "br-lan"


def test_ifname_falls_back_to_last_non_loopback():
    with mock.patch("socket.if_nameindex", return_value=[(1, "lo"), (2, "eth0"), (3, "wlan0")]):
        assert get_net_ifname() == "wlan0"


def test_ifname_none_found():
    with mock.patch("socket.if_nameindex", return_value=[(1, "lo")]):
        with pytest.raises(OSError):
            get_net_ifname()


def test_get_net_mac_formats_hwaddr():
    reply = b"eth0".ljust(16, b"\0") + b"\x01\x00" + bytes([0x02, 0x00, 0x00, 0xAA, 0xBB, 0xCC])
    reply = reply.ljust(256, b"\0")
    with mock.patch("fcntl.ioctl", return_value=reply):
        assert get_net_mac("eth0") == "020000AABBCC"


def test_get_net_mac_ioctl_failure():
    with mock.patch("fcntl.ioctl", side_effect=OSError("no such device")):
        with pytest.raises(OSError):
            get_net_mac("nosuchif0")


def test_get_net_mac_requires_name():
    with pytest.raises(ValueError):
        get_net_mac("")