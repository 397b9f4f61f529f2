"""Local TCP redirect: forward one local connection at a time to the server."""

from __future__ import annotations

import asyncio
import logging
import socket
import threading
from typing import Optional

from xfrpc.proxy import ProxyService
from xfrpc.utils import is_valid_ip_address

logger = logging.getLogger(__name__)

BUF_LEN = 2 * 1024


async def _pipe(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    try:
        while True:
            data = await reader.read(BUF_LEN)
            if not data:
                break
            writer.write(data)
            await writer.drain()
    except (ConnectionError, OSError) as exc:
        logger.error("connection error: %s", exc)


def _close(writer: asyncio.StreamWriter) -> None:
    try:
        writer.close()
    except (ConnectionError, OSError):
        pass


class TcpRedirService:
    """Listen on the service's local port and relay to its remote port.

    Only one connection is relayed at a time; connections arriving while one
    is active are closed at once.
    """

    def __init__(
        self,
        service: ProxyService,
        server_addr: str,
        listen_host: str = "0.0.0.0",
    ) -> None:
        self.service = service
        self.server_addr = server_addr
        self.listen_host = listen_host
        self.remote_host: Optional[str] = None
        self.listen_port: Optional[int] = None
        self.ready = threading.Event()
        self._active = False

    def _resolve_server(self) -> str:
        if not self.server_addr:
            raise OSError("no server address configured")
        if is_valid_ip_address(self.server_addr):
            return self.server_addr
        # IPv4 only, as the relay target is always an AF_INET address.
        return socket.gethostbyname(self.server_addr)

    async def _accept(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        if self._active:
            logger.info(
                "Rejecting new connection. Only one connection allowed at a time."
            )
            _close(writer)
            return
        self._active = True
        try:
            try:
                remote_reader, remote_writer = await asyncio.open_connection(
                    self.remote_host, self.service.remote_port
                )
            except OSError as exc:
                logger.error("connect to remote port failed! %s", exc)
                _close(writer)
                return
            logger.info(
                "connect to remote xfrps service [%s:%d] success!",
                self.server_addr,
                self.service.remote_port,
            )
            tasks = {
                asyncio.ensure_future(_pipe(reader, remote_writer)),
                asyncio.ensure_future(_pipe(remote_reader, writer)),
            }
            _, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            logger.info("connection closed")
            _close(writer)
            _close(remote_writer)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        finally:
            self._active = False

    async def serve(self) -> None:
        """Resolve the server, bind the listener and relay until cancelled."""
        self.remote_host = self._resolve_server()
        server = await asyncio.start_server(
            self._accept,
            self.listen_host,
            self.service.local_port,
            reuse_address=True,
        )
        self.listen_port = server.sockets[0].getsockname()[1]
        self.ready.set()
        async with server:
            await server.serve_forever()

    def _run(self) -> None:
        try:
            asyncio.run(self.serve())
        except OSError as exc:
            logger.error("tcp_redir worker failed: %s", exc)
            raise

    def start(self) -> threading.Thread:
        """Run the service in a background daemon thread."""
        thread = threading.Thread(target=self._run, name="tcp_redir", daemon=True)
        thread.start()
        logger.info("create tcp_redir worker thread success!")
        return thread


def start_tcp_redir_service(service: ProxyService, server_addr: str) -> TcpRedirService:
    """Start a redirect service for a proxy service in the background."""
    redir = TcpRedirService(service, server_addr)
    redir.start()
    return redir