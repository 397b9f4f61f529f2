"""Stream multiplexing over a single control connection (yamux-style framing)."""

from __future__ import annotations

import enum
import logging
import struct
from dataclasses import dataclass, field
from typing import BinaryIO, Callable, Optional, Protocol

logger = logging.getLogger(__name__)

MAX_STREAM_WINDOW_SIZE = 256 * 1024
RBUF_SIZE = 32 * 1024
WBUF_SIZE = 32 * 1024
HEADER_SIZE = 12
PROTO_VERSION = 0

_HEADER = struct.Struct(">BBHII")
_U32 = 0xFFFFFFFF


class Writable(Protocol):
    def write(self, data: bytes) -> object: ...


class MuxType(enum.IntEnum):
    DATA = 0
    WINDOW_UPDATE = 1
    PING = 2
    GO_AWAY = 3


class MuxFlag(enum.IntFlag):
    ZERO = 0
    SYN = 1
    ACK = 1 << 1
    FIN = 1 << 2
    RST = 1 << 3


class GoAwayType(enum.IntEnum):
    NORMAL = 0
    PROTO_ERR = 1
    INTERNAL_ERR = 2


class StreamState(enum.IntEnum):
    INIT = 0
    SYN_SEND = 1
    SYN_RECEIVED = 2
    ESTABLISHED = 3
    LOCAL_CLOSE = 4
    REMOTE_CLOSE = 5
    CLOSED = 6
    RESET = 7


@dataclass
class MuxHeader:
    """A frame header; fields hold host values, packing is big-endian."""

    version: int
    type: int
    flags: int
    stream_id: int
    length: int

    def pack(self) -> bytes:
        return _HEADER.pack(
            self.version, self.type, self.flags, self.stream_id, self.length
        )

    @classmethod
    def unpack(cls, data: bytes) -> "MuxHeader":
        if len(data) < HEADER_SIZE:
            raise ValueError(
                f"mux header needs {HEADER_SIZE} bytes, got {len(data)}"
            )
        return cls(*_HEADER.unpack(bytes(data[:HEADER_SIZE])))


class RingBuffer:
    """Bounded FIFO byte buffer."""

    def __init__(self, capacity: int = RBUF_SIZE) -> None:
        self.capacity = capacity
        self._data = bytearray()

    def __len__(self) -> int:
        return len(self._data)

    @property
    def free(self) -> int:
        return self.capacity - len(self._data)

    def append(self, data: bytes) -> int:
        """Append all of data; raise BufferError if it does not fit."""
        if len(data) > self.free:
            raise BufferError(
                f"ring buffer has {self.free} bytes free, {len(data)} requested"
            )
        self._data += data
        return len(data)

    def pop(self, size: int) -> bytes:
        """Remove and return exactly size bytes."""
        if size > len(self._data):
            raise ValueError(
                f"ring buffer holds {len(self._data)} bytes, {size} requested"
            )
        chunk = bytes(self._data[:size])
        del self._data[:size]
        return chunk

    def read_from(self, source: BinaryIO, size: int) -> int:
        """Fill from a readable source, up to size bytes and the free space."""
        if self.free == 0:
            logger.error("ring buffer is full")
            return 0
        if size > self.free:
            logger.info(
                "prepare read data [%d] out size ring capacity [%d]", size, self.free
            )
            size = self.free
        chunk = source.read(size) or b""
        self._data += chunk
        return len(chunk)

    def write_to(self, sink: Writable, size: int) -> int:
        """Drain up to size bytes into a writable sink."""
        if not self._data:
            logger.error("ring buffer is empty")
            return 0
        if size > len(self._data):
            logger.info(
                "prepare write data [%d] out size ring data [%d]", size, len(self._data)
            )
            size = len(self._data)
        chunk = self.pop(size)
        sink.write(chunk)
        return len(chunk)


@dataclass
class MuxStream:
    id: int
    state: StreamState = StreamState.INIT
    recv_window: int = MAX_STREAM_WINDOW_SIZE
    send_window: int = MAX_STREAM_WINDOW_SIZE
    tx_ring: RingBuffer = field(default_factory=lambda: RingBuffer(WBUF_SIZE))
    rx_ring: RingBuffer = field(default_factory=lambda: RingBuffer(RBUF_SIZE))


StreamHandler = Callable[[MuxStream, int], int]


class MuxSession:
    """Multiplexing state of one control connection.

    ``out`` receives frame headers. ``on_stream_closed`` is called with a
    stream id once a stream is fully closed or reset; ``on_send_window_open``
    is called with a stream whose exhausted send window grows again.
    """

    def __init__(
        self,
        out: Writable,
        enabled: bool = True,
        on_stream_closed: Optional[Callable[[int], None]] = None,
        on_send_window_open: Optional[Callable[[MuxStream], None]] = None,
    ) -> None:
        self.out = out
        self.enabled = enabled
        self.on_stream_closed = on_stream_closed
        self.on_send_window_open = on_send_window_open
        self.proto_version = PROTO_VERSION
        self.remote_go_away = False
        self.local_go_away = False
        self.current_stream: Optional[MuxStream] = None
        self._session_id = 1
        self._streams: dict[int, MuxStream] = {}

    # -- framing -------------------------------------------------------

    def encode(self, mux_type, flags, stream_id, length) -> MuxHeader:
        return MuxHeader(
            self.proto_version, int(mux_type), int(flags), stream_id, length or 0
        )

    def validate(self, header: MuxHeader) -> bool:
        return (
            header.version == self.proto_version
            and header.type <= MuxType.GO_AWAY
        )

    def _emit(self, mux_type, flags, stream_id, length) -> None:
        self.out.write(self.encode(mux_type, flags, stream_id, length).pack())

    # -- session ids and stream table ------------------------------------

    def next_session_id(self) -> int:
        sid = self._session_id
        self._session_id += 2
        return sid

    def reset_session_id(self) -> None:
        self._session_id = 1

    def open_stream(self, stream_id, state=StreamState.INIT) -> MuxStream:
        stream = MuxStream(stream_id, StreamState(state))
        self.add_stream(stream)
        return stream

    def add_stream(self, stream: MuxStream) -> None:
        self._streams[stream.id] = stream

    def del_stream(self, stream_id) -> None:
        self._streams.pop(stream_id, None)

    def clear_streams(self) -> None:
        self._streams.clear()

    def get_stream(self, stream_id) -> Optional[MuxStream]:
        return self._streams.get(stream_id)

    # -- outgoing control frames -----------------------------------------

    def send_window_update_syn(self, stream_id) -> None:
        if self.enabled:
            self._emit(MuxType.WINDOW_UPDATE, MuxFlag.SYN, stream_id, 0)

    def send_window_update_ack(self, stream_id, delta) -> None:
        if self.enabled:
            self._emit(MuxType.WINDOW_UPDATE, MuxFlag.ZERO, stream_id, 0)

    def send_window_update_fin(self, stream_id) -> None:
        if self.enabled:
            self._emit(MuxType.WINDOW_UPDATE, MuxFlag.FIN, stream_id, 0)

    def send_window_update_rst(self, stream_id) -> None:
        if self.enabled:
            self._emit(MuxType.WINDOW_UPDATE, MuxFlag.RST, stream_id, 0)

    def send_data(self, flags, stream_id, length) -> None:
        if self.enabled:
            self._emit(MuxType.DATA, flags, stream_id, length)

    def send_ping(self, ping_id) -> None:
        if self.enabled:
            self._emit(MuxType.PING, MuxFlag.SYN, 0, ping_id)

    def _send_ping_ack(self, ping_id) -> None:
        if self.enabled:
            self._emit(MuxType.PING, MuxFlag.ACK, 0, ping_id)

    def _send_go_away(self, reason) -> None:
        if self.enabled:
            self._emit(MuxType.GO_AWAY, MuxFlag.ZERO, 0, reason)

    @staticmethod
    def _send_flags(stream: MuxStream) -> MuxFlag:
        if stream.state == StreamState.INIT:
            stream.state = StreamState.SYN_SEND
            return MuxFlag.SYN
        if stream.state == StreamState.SYN_RECEIVED:
            stream.state = StreamState.ESTABLISHED
            return MuxFlag.ACK
        return MuxFlag.ZERO

    def send_window_update(self, stream: MuxStream, length) -> None:
        window = MAX_STREAM_WINDOW_SIZE
        delta = ((window - length) - stream.recv_window) & _U32
        flags = self._send_flags(stream)
        if delta < window // 2 and not flags:
            return
        stream.recv_window = (stream.recv_window + delta) & _U32
        self._emit(MuxType.WINDOW_UPDATE, flags, stream.id, delta)

    # -- incoming frames -------------------------------------------------

    def _close(self, stream: MuxStream) -> None:
        logger.debug("free stream %d", stream.id)
        self.del_stream(stream.id)
        if self.on_stream_closed is not None:
            self.on_stream_closed(stream.id)

    def _process_flags(self, flags: int, stream: MuxStream) -> bool:
        close = False
        if flags & MuxFlag.ACK:
            if stream.state == StreamState.SYN_SEND:
                stream.state = StreamState.ESTABLISHED
        elif flags & MuxFlag.FIN:
            if stream.state in (
                StreamState.SYN_SEND,
                StreamState.SYN_RECEIVED,
                StreamState.ESTABLISHED,
            ):
                stream.state = StreamState.REMOTE_CLOSE
            elif stream.state == StreamState.LOCAL_CLOSE:
                stream.state = StreamState.CLOSED
                close = True
            else:
                logger.error("unexpected FIN flag in state %d", stream.state)
                return False
        elif flags & MuxFlag.RST:
            stream.state = StreamState.RESET
            close = True
        if close:
            self._close(stream)
        return True

    def _process_data(self, stream, length, flags, handler) -> int:
        if not self._process_flags(flags, stream):
            return 0
        if self.get_stream(stream.id) is None:
            return length
        if length > stream.recv_window:
            logger.error(
                "receive window exceed (remain %d, recv %d)",
                stream.recv_window,
                length,
            )
            return 0
        stream.recv_window -= length
        consumed = handler(stream, length)
        if consumed != length:
            logger.info(
                "send data to local proxy not equal, nret %d, length %d",
                consumed,
                length,
            )
        self.send_window_update(stream, consumed)
        return length

    def _incr_send_window(self, header: MuxHeader, stream: MuxStream) -> bool:
        if not self._process_flags(header.flags, stream):
            return False
        if self.get_stream(stream.id) is None:
            return True
        if stream.send_window == 0 and self.on_send_window_open is not None:
            self.on_send_window_open(stream)
        stream.send_window += header.length
        return True

    def _incoming_stream(self, stream_id) -> bool:
        if self.local_go_away:
            self.send_window_update_rst(stream_id)
            return False
        return True

    def handle_ping(self, header: MuxHeader) -> None:
        if header.flags & MuxFlag.SYN:
            self._send_ping_ack(header.length)

    def handle_go_away(self, header: MuxHeader) -> None:
        code = header.length
        if code == GoAwayType.NORMAL:
            self.remote_go_away = True
        elif code == GoAwayType.PROTO_ERR:
            logger.error("receive protocol error go away")
        elif code == GoAwayType.INTERNAL_ERR:
            logger.error("receive internal error go away")
        else:
            logger.error("receive unexpected go away")

    def handle_stream(self, header: MuxHeader, handler: StreamHandler) -> int:
        """Process a DATA or WINDOW_UPDATE frame.

        For DATA frames the payload must already be in the stream's rx ring;
        ``handler(stream, length)`` consumes it and returns the bytes taken.
        Returns the payload length handled, or 0.
        """
        if header.flags & MuxFlag.SYN:
            logger.info("unexpected incoming stream %d", header.stream_id)
            if not self._incoming_stream(header.stream_id):
                return 0
        stream = self.get_stream(header.stream_id)
        if stream is None:
            return 0
        if header.type == MuxType.WINDOW_UPDATE:
            if not self._incr_send_window(header, stream):
                self._send_go_away(GoAwayType.PROTO_ERR)
            return 0
        if stream.state != StreamState.ESTABLISHED:
            return 0
        if not self._process_data(stream, header.length, header.flags, handler):
            self._send_go_away(GoAwayType.PROTO_ERR)
            return 0
        return header.length

    # -- stream I/O ------------------------------------------------------

    def stream_read(self, source: BinaryIO, stream: MuxStream, size) -> int:
        if stream.state != StreamState.ESTABLISHED:
            logger.warning(
                "stream %d state is %d : not ESTABLISHED, len %d",
                stream.id,
                stream.state,
                size,
            )
        return stream.rx_ring.read_from(source, size)

    def stream_write(self, out: Writable, data: bytes, stream: MuxStream) -> int:
        """Send data on a stream within its send window; buffer the rest."""
        if stream.state in (
            StreamState.LOCAL_CLOSE,
            StreamState.CLOSED,
            StreamState.RESET,
        ):
            logger.info("stream %d state is closed", stream.id)
            return 0
        tx = stream.tx_ring
        length = len(data)
        if stream.send_window == 0:
            logger.info(
                "stream %d send_window is zero, length %d left %d",
                stream.id,
                length,
                tx.free,
            )
            tx.append(data)
            return 0

        flags = self._send_flags(stream)
        pending = len(tx)
        if stream.send_window < pending:
            sent = stream.send_window
            self.send_data(flags, stream.id, sent)
            tx.write_to(out, sent)
            tx.append(data)
        elif stream.send_window < pending + length:
            sent = stream.send_window
            self.send_data(flags, stream.id, sent)
            if pending:
                tx.write_to(out, pending)
            head = sent - pending
            out.write(bytes(data[:head]))
            tx.append(bytes(data[head:]))
        else:
            sent = pending + length
            self.send_data(flags, stream.id, sent)
            if pending:
                tx.write_to(out, pending)
            out.write(bytes(data))
        stream.send_window -= sent
        return sent

    def stream_close(self, stream: MuxStream) -> bool:
        """Close our side; True if the stream is now half closed."""
        if stream.state in (
            StreamState.SYN_SEND,
            StreamState.SYN_RECEIVED,
            StreamState.ESTABLISHED,
        ):
            stream.state = StreamState.LOCAL_CLOSE
            fully_closed = False
        elif stream.state in (StreamState.LOCAL_CLOSE, StreamState.REMOTE_CLOSE):
            stream.state = StreamState.CLOSED
            fully_closed = True
        else:
            return False
        flags = self._send_flags(stream) | MuxFlag.FIN
        self._emit(MuxType.WINDOW_UPDATE, flags, stream.id, 0)
        if not fully_closed:
            return True
        logger.debug("del proxy client %d", stream.id)
        self._close(stream)
        return False