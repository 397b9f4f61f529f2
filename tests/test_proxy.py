import io

from xfrpc.proxy import Proxy, ProxyService


def test_new_proxy_keeps_partner_and_has_no_data_port():
    partner = io.BytesIO()
    proxy = Proxy(partner)
    assert proxy.bev is partner
    assert proxy.remote_data_port == -1
    assert proxy.proxy_name is None


def test_proxies_do_not_share_state():
    first = Proxy(io.BytesIO(), proxy_name="ftp")
    second = Proxy(io.BytesIO())
    first.remote_data_port = 2100
    assert second.remote_data_port == -1
    assert first.proxy_name == "ftp"


def test_proxy_service_fields_and_equality():
    service = ProxyService("web", local_ip="127.0.0.1", local_port=80, remote_port=8080)
    same = ProxyService("web", "tcp", "127.0.0.1", 80, 8080)
    assert service == same
    assert service.plugin is None
    service.remote_port = 9090
    assert service != same


def test_proxy_service_default_type():
    service = ProxyService("svc")
    assert service.proxy_type == "tcp"
    assert service.local_ip is None