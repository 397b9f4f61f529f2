"""Client-side pieces of an frp-style reverse proxy: stream multiplexing, SOCKS5, FTP, UDP framing, compression and TCP redirection."""

__version__ = "3.5.661"