# xfrpc

Building blocks for the client side of an frp-style reverse proxy, in plain
Python with no third-party runtime dependencies.

## What is inside

- `xfrpc.tcpmux`: the stream multiplexer.
  - `MuxHeader` packs and unpacks the 12-byte big-endian frame header.
  - `MuxType`, `MuxFlag`, `GoAwayType` and `StreamState` name the frame types,
    flags, go-away codes and stream states.
  - `RingBuffer` is a bounded FIFO byte buffer (`append`, `pop`, `read_from`,
    `write_to`).
  - `MuxStream` holds a stream's id, state, send and receive windows and its
    tx and rx buffers.
  - `MuxSession` writes frame headers to the writable it is given. It keeps
    the stream table (`open_stream`, `add_stream`, `del_stream`,
    `get_stream`, `clear_streams`) and hands out odd session ids
    (`next_session_id`, `reset_session_id`). It sends window updates, data
    headers and pings, and answers incoming pings and go-away frames
    (`handle_ping`, `handle_go_away`). `handle_stream` processes DATA and
    WINDOW_UPDATE frames. `stream_write` sends within the send window and
    buffers the rest; `stream_read` fills a stream's rx buffer;
    `stream_close` half-closes or closes a stream. Control frames are only
    written when the session is `enabled`.
- `xfrpc.proxy`: the `Proxy` and `ProxyService` records that describe a
  proxied connection and a configured proxy service.
- `xfrpc.ftp`: FTP passive-mode support.
  - `pasv_unpack` reads a `227 Entering Passive Mode (...)` reply into an
    `FtpPasv`; `pasv_pack` writes one.
  - `rewrite_control_reply` swaps the local data address for the server
    address and the proxy's remote data port.
  - `set_ftp_data_proxy_tunnel` points the FTP data proxy service at the
    announced ports.
- `xfrpc.socks5`: SOCKS5 request parsing (`is_socks5`, `parse_socks5_addr`,
  `Socks5Address`). `Socks5Handler` walks a mux stream through
  `Socks5State`, for both the SOCKS5 handshake (`handle_socks5`) and the
  bare-address ss5 form (`handle_ss5`).
- `xfrpc.udp`: base64 framing of UDP payloads (`base64_encode`,
  `base64_decode`, `make_udp_packet`, `handle_udp_packet`).
- `xfrpc.utils`: address and interface helpers (`is_valid_ip_address`,
  `dns_unified`, `get_net_ifname`, `get_net_mac`). `get_net_mac` uses a
  Linux ioctl.
- `xfrpc.zip`: zlib and gzip compression (`deflate_write`, `inflate_read`).
- `xfrpc.tcp_redir`: `TcpRedirService` listens on a service's local port
  and relays one connection at a time to the server's remote port, on
  asyncio. `serve` runs it in the current event loop; `start` and
  `start_tcp_redir_service` run it in a background daemon thread.

## Examples

Building and reading a multiplexer frame header:

```python
import io

from xfrpc.tcpmux import MuxFlag, MuxHeader, MuxSession, MuxType

session = MuxSession(io.BytesIO())
header = session.encode(MuxType.WINDOW_UPDATE, MuxFlag.SYN, 1, 0)
frame = header.pack()
assert len(frame) == 12
assert session.validate(MuxHeader.unpack(frame))
```

Reading and writing an FTP passive-mode reply:

```python
from xfrpc.ftp import pasv_pack, pasv_unpack

fp = pasv_unpack(b"227 Entering Passive Mode (192,168,1,10,4,1).")
assert fp.ftp_server_ip == "192.168.1.10"
assert fp.ftp_server_port == 1025
assert pasv_pack(fp) == b"227 Entering Passive Mode (192,168,1,10,4,1).\n"
```

Compressing and restoring data:

```python
from xfrpc.zip import deflate_write, inflate_read

packed = deflate_write(b"hello hello hello")
assert inflate_read(packed) == b"hello hello hello"
```

## What this package does not do

There is no command to run and no complete client. The package does not
read a configuration file, log in to a server, run the control connection
or its message loop, or open the local connections that carry proxied
data; those are left to the code that uses these pieces. It has no
built-in plugin services apart from the TCP redirect.

## Requirements

Python 3.10 or later. The test suite uses pytest and pytest-asyncio,
available through the `test` extra.