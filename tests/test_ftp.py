import pytest

from xfrpc.ftp import (
    FtpPasv,
    pasv_pack,
    pasv_unpack,
    rewrite_control_reply,
    set_ftp_data_proxy_tunnel,
)
from xfrpc.proxy import Proxy, ProxyService

REPLY = b"227 Entering Passive Mode (192,168,1,10,195,80).\r\n"


def test_unpack_227_reply():
    fp = pasv_unpack(REPLY)
    assert fp.code == 227
    assert fp.ftp_server_ip == "192.168.1.10"
    assert fp.ftp_server_port == 195 * 256 + 80


@pytest.mark.parametrize("reply", [b"200 OK\r\n", b"211 status\r\n", b"229 (|||6446|)\r\n", b""])
def test_unpack_other_replies(reply):
    assert pasv_unpack(reply) is None


def test_pack_fixed_format():
    packed = pasv_pack(FtpPasv(227, "10.0.0.1", 2121))
    assert packed == b"227 Entering Passive Mode (10,0,0,1,8,73).\n"


def test_pack_unpack_round_trip():
    original = FtpPasv(227, "172.16.5.4", 40001)
    assert pasv_unpack(pasv_pack(original)) == original


def test_pack_rejects_other_codes():
    with pytest.raises(ValueError):
        pasv_pack(FtpPasv(211, "1.2.3.4", 21))


def test_set_tunnel_updates_service():
    services = {"ftp_data": ProxyService("ftp_data")}
    local = FtpPasv(227, "192.168.1.10", 5000)
    remote = FtpPasv(227, "1.2.3.4", 6000)
    service = set_ftp_data_proxy_tunnel(services, "ftp_data", local, remote)
    assert service is services["ftp_data"]
    assert (service.local_ip, service.local_port, service.remote_port) == (
        "192.168.1.10",
        5000,
        6000,
    )


def test_set_tunnel_missing_service():
    result = set_ftp_data_proxy_tunnel({}, "ftp_data", FtpPasv(), FtpPasv())
    assert result is None


def test_rewrite_passes_other_replies():
    proxy = Proxy(None, "ftp", 6000)
    assert rewrite_control_reply(b"220 hi\r\n", proxy, "1.2.3.4", {}, "d") == b"220 hi\r\n"


def test_rewrite_pasv_reply():
    services = {"ftp_data": ProxyService("ftp_data")}
    proxy = Proxy(None, "ftp", 6000)
    out = rewrite_control_reply(REPLY, proxy, "1.2.3.4", services, "ftp_data")
    fp = pasv_unpack(out)
    assert fp.ftp_server_ip == "1.2.3.4"
    assert fp.ftp_server_port == 6000
    assert services["ftp_data"].local_ip == "192.168.1.10"
    assert services["ftp_data"].remote_port == 6000


def test_rewrite_drops_without_data_port():
    services = {"ftp_data": ProxyService("ftp_data")}
    out = rewrite_control_reply(REPLY, Proxy(None, "ftp"), "1.2.3.4", services, "ftp_data")
    assert out == b""
    assert services["ftp_data"].remote_port == 0


def test_rewrite_without_server_address():
    with pytest.raises(ValueError):
        rewrite_control_reply(REPLY, Proxy(None, "ftp", 6000), None, {}, "ftp_data")