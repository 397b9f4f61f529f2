"""Per-connection proxy state and proxy service descriptions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

IP_LEN = 16


@dataclass
class Proxy:
    """State of one proxied connection.

    ``bev`` is the partner connection that forwarded data is written to.
    ``remote_data_port`` is only used by FTP proxies and stays -1 until the
    server announces the data port.
    """

    bev: Any
    proxy_name: Optional[str] = None
    remote_data_port: int = -1


@dataclass
class ProxyService:
    """A configured proxy: where the local service lives and its remote port."""

    proxy_name: str
    proxy_type: str = "tcp"
    local_ip: Optional[str] = None
    local_port: int = 0
    remote_port: int = 0
    plugin: Optional[str] = None