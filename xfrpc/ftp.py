"""FTP passive-mode reply rewriting for FTP proxies."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Mapping, Optional

from xfrpc.proxy import IP_LEN, Proxy, ProxyService

logger = logging.getLogger(__name__)

FTP_PRO_BUF = 256
FTP_PASV_PORT_BLOCK = 256

_PASV_CODES = (227, 211, 229)
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


@dataclass
class FtpPasv:
    code: int = -1
    ftp_server_ip: str = ""
    ftp_server_port: int = -1


def _atoi(text: str) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


def pasv_unpack(data: bytes) -> Optional[FtpPasv]:
    """Parse a ``227 Entering Passive Mode (h1,h2,h3,h4,p1,p2)`` reply.

    Returns None for anything that is not a 227 reply.
    """
    text = data.decode("latin-1")
    code = _atoi(text[:3])
    if code not in _PASV_CODES:
        return None
    if code != 227:
        logger.debug("ftp pasv reply %d not supported", code)
        return None

    ip: list[str] = []
    ports = ["", ""]
    started = False
    commas = 0
    port_chars = 0
    for ch in text:
        if len(ip) >= IP_LEN:
            break
        if ch == "(":
            started = True
            continue
        if not started:
            continue
        if ch == ")":
            break
        if ch == ",":
            commas += 1
            port_chars = 0
            if commas < 4:
                ip.append(".")
            continue
        if commas >= 4 and port_chars < 4:
            if commas - 4 < len(ports):
                ports[commas - 4] += ch
            port_chars += 1
            continue
        ip.append(ch)

    fp = FtpPasv(
        code=code,
        ftp_server_ip="".join(ip),
        ftp_server_port=_atoi(ports[0]) * FTP_PASV_PORT_BLOCK + _atoi(ports[1]),
    )
    logger.debug("ftp pasv unpack:[%s:%d]", fp.ftp_server_ip, fp.ftp_server_port)
    return fp


def pasv_pack(fp: FtpPasv) -> bytes:
    """Build a 227 reply; raise ValueError for any other reply code."""
    if fp.code != 227:
        raise ValueError(f"ftp pasv reply {fp.code} not supported in pasv_pack")
    ip = fp.ftp_server_ip[:IP_LEN].replace(".", ",")
    reply = "227 Entering Passive Mode (%s,%d,%d).\n" % (
        ip,
        fp.ftp_server_port // FTP_PASV_PORT_BLOCK,
        fp.ftp_server_port % FTP_PASV_PORT_BLOCK,
    )
    return reply.encode("latin-1")[: FTP_PRO_BUF - 1]


def set_ftp_data_proxy_tunnel(
    services: Mapping[str, ProxyService],
    data_proxy_name: str,
    local_fp: FtpPasv,
    remote_fp: FtpPasv,
) -> Optional[ProxyService]:
    """Point the FTP data proxy service at the announced local and remote ports."""
    service = services.get(data_proxy_name)
    if service is None:
        logger.error("ftp data proxy %s not registered as a proxy service", data_proxy_name)
        return None
    service.local_port = local_fp.ftp_server_port
    service.local_ip = local_fp.ftp_server_ip
    service.remote_port = remote_fp.ftp_server_port
    logger.debug(
        "set ftp proxy DATA port [local:remote] = [%d:%d]",
        service.local_port,
        service.remote_port,
    )
    return service


def rewrite_control_reply(
    data: bytes,
    proxy: Proxy,
    server_addr: Optional[str],
    services: Mapping[str, ProxyService],
    data_proxy_name: str,
) -> bytes:
    """Return the bytes to forward for a reply read from the FTP server.

    Passive-mode replies are rewritten to point at the server address and the
    proxy's remote data port; other replies pass through unchanged. An empty
    result means the reply is dropped.
    """
    local_fp = pasv_unpack(data)
    if local_fp is None:
        return bytes(data)
    if not server_addr:
        raise ValueError("FTP proxy without server ip")
    remote_fp = FtpPasv(
        code=local_fp.code,
        ftp_server_ip=server_addr[:IP_LEN],
        ftp_server_port=proxy.remote_data_port,
    )
    if remote_fp.ftp_server_port <= 0:
        logger.error("remote ftp data port is not init")
        return b""
    try:
        packed = pasv_pack(remote_fp)
    except ValueError:
        logger.error("ftp proxy replace failed")
        return b""
    set_ftp_data_proxy_tunnel(services, data_proxy_name, local_fp, remote_fp)
    return packed