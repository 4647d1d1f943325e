"""Minimal RFC 6455 WebSocket client for the DevTools endpoint.

Only what CDP over a local socket needs: the HTTP upgrade handshake, masked
client frames, text messages, ping/pong and close. No extensions, no TLS.
"""

from __future__ import annotations

import base64
import contextlib
import logging
import os
import socket
import struct
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import urlsplit

from .errors import ConnectionClosed, FrameProtocolError, HandshakeFailure, TransportError

log = logging.getLogger(__name__)

OP_CONTINUATION = 0x0
OP_TEXT = 0x1
OP_BINARY = 0x2
OP_CLOSE = 0x8
OP_PING = 0x9
OP_PONG = 0xA

MAX_PAYLOAD_BYTES = 10 * 1024 * 1024
_MAX_HEADER_LINE = 64 * 1024


@dataclass
class Frame:
    opcode: int
    payload: bytes
    fin: bool = True


def apply_mask(payload: bytes, mask_key: bytes) -> bytes:
    """XOR *payload* with the repeating 4-byte *mask_key* (masking is its own inverse)."""
    n = len(payload)
    if n == 0:
        return b""
    repeated = (mask_key * (n // 4 + 1))[:n]
    return (int.from_bytes(payload, "big") ^ int.from_bytes(repeated, "big")).to_bytes(n, "big")


def encode_frame(opcode: int, payload: bytes, *, mask_key: bytes | None = None) -> bytes:
    """Encode one final client frame. Client frames are always masked."""
    if mask_key is None:
        mask_key = os.urandom(4)
    if len(mask_key) != 4:
        raise ValueError("mask key must be 4 bytes")

    header = bytearray([0x80 | (opcode & 0x0F)])
    n = len(payload)
    if n <= 125:
        header.append(0x80 | n)
    elif n <= 0xFFFF:
        header.append(0x80 | 126)
        header += struct.pack(">H", n)
    else:
        header.append(0x80 | 127)
        header += struct.pack(">Q", n)
    header += mask_key
    return bytes(header) + apply_mask(payload, mask_key)


def read_frame(read_exact: Callable[[int], bytes], *, max_payload: int = MAX_PAYLOAD_BYTES) -> Frame:
    """Decode one frame using *read_exact(n)* as the byte source.

    Steps: header, length class, optional mask key, payload, optional unmask.
    """
    b0, b1 = read_exact(2)
    fin = bool(b0 & 0x80)
    opcode = b0 & 0x0F
    masked = bool(b1 & 0x80)

    length = b1 & 0x7F
    if length == 126:
        (length,) = struct.unpack(">H", read_exact(2))
    elif length == 127:
        (length,) = struct.unpack(">Q", read_exact(8))
    if length > max_payload:
        raise FrameProtocolError(f"WebSocket payload too large: {length} bytes (limit {max_payload})")

    mask_key = read_exact(4) if masked else b""
    payload = read_exact(length) if length else b""
    if masked:
        payload = apply_mask(payload, mask_key)
    return Frame(opcode=opcode, payload=payload, fin=fin)


class Connection:
    """An open client WebSocket over a plain TCP socket."""

    def __init__(self, sock: socket.socket, reader=None, *, url: str = "") -> None:  # noqa: ANN001
        self.sock = sock
        # The handshake reader may already hold buffered frame bytes; keep using it.
        self._reader = reader if reader is not None else sock.makefile("rb")
        self.url = url
        self._closed = False

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _read_exact(self, n: int) -> bytes:
        try:
            data = self._reader.read(n)
        except OSError as exc:
            raise TransportError(f"WebSocket read failed: {exc}") from exc
        if data is None or len(data) < n:
            raise ConnectionClosed("WebSocket connection closed by peer")
        return data

    def write_frame(self, opcode: int, payload: bytes) -> None:
        try:
            self.sock.sendall(encode_frame(opcode, payload))
        except OSError as exc:
            raise TransportError(f"WebSocket write failed: {exc}") from exc

    def write_text(self, data: bytes | str) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.write_frame(OP_TEXT, data)

    def read_frame(self) -> Frame:
        return read_frame(self._read_exact)

    def read_message(self) -> tuple[int, bytes]:
        """Return the next text message as ``(opcode, payload)``.

        Pings are answered inline, pongs and non-text data frames are skipped,
        fragmented text messages are reassembled. A close frame raises
        :class:`ConnectionClosed`.
        """
        fragments: list[bytes] | None = None
        while True:
            frame = self.read_frame()
            if frame.opcode == OP_PING:
                self.write_frame(OP_PONG, frame.payload)
                continue
            if frame.opcode == OP_PONG:
                continue
            if frame.opcode == OP_CLOSE:
                raise ConnectionClosed("WebSocket close frame received")
            if frame.opcode == OP_TEXT:
                if frame.fin:
                    return OP_TEXT, frame.payload
                fragments = [frame.payload]
                continue
            if frame.opcode == OP_CONTINUATION and fragments is not None:
                fragments.append(frame.payload)
                if frame.fin:
                    return OP_TEXT, b"".join(fragments)
                continue
            log.debug("Skipping WebSocket frame with opcode 0x%x", frame.opcode)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        with contextlib.suppress(OSError):
            self.sock.sendall(encode_frame(OP_CLOSE, b""))
        with contextlib.suppress(OSError):
            self._reader.close()
        with contextlib.suppress(OSError):
            self.sock.close()


def _read_handshake_line(reader) -> bytes:  # noqa: ANN001
    line = reader.readline(_MAX_HEADER_LINE + 1)
    if not line:
        raise HandshakeFailure("WebSocket handshake failed: connection closed before response")
    if len(line) > _MAX_HEADER_LINE:
        raise HandshakeFailure("WebSocket handshake failed: header line too long")
    return line


def _is_switching_protocols(status_line: bytes) -> bool:
    parts = status_line.decode("latin-1").strip().split(" ", 2)
    return len(parts) >= 2 and parts[0].startswith("HTTP/1.") and parts[1] == "101"


def dial(ws_url: str, timeout: float = 5.0) -> Connection:
    """Open a WebSocket connection to a ``ws://`` URL.

    *timeout* bounds the TCP connect and the handshake. Once upgraded the
    socket is switched back to blocking reads with no deadline.
    """
    try:
        parts = urlsplit(ws_url)
        port = parts.port or 80
    except ValueError as exc:
        raise HandshakeFailure(f"Invalid WebSocket URL {ws_url}: {exc}") from exc
    if parts.scheme != "ws":
        raise HandshakeFailure(f"Unsupported WebSocket scheme: {parts.scheme or '<none>'}")
    host = parts.hostname
    if not host:
        raise HandshakeFailure(f"WebSocket URL has no host: {ws_url}")
    path = parts.path or "/"
    if parts.query:
        path = f"{path}?{parts.query}"

    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except OSError as exc:
        raise TransportError(f"Cannot connect to {host}:{port}: {exc}") from exc

    reader = sock.makefile("rb")
    try:
        key = base64.b64encode(os.urandom(16)).decode("ascii")
        request = (
            f"GET {path} HTTP/1.1\r\n"
            f"Host: {parts.netloc}\r\n"
            "Upgrade: websocket\r\n"
            "Connection: Upgrade\r\n"
            f"Sec-WebSocket-Key: {key}\r\n"
            "Sec-WebSocket-Version: 13\r\n"
            "\r\n"
        )
        sock.sendall(request.encode("ascii"))

        status_line = _read_handshake_line(reader)
        if not _is_switching_protocols(status_line):
            raise HandshakeFailure(
                f"WebSocket handshake failed: {status_line.decode('latin-1', errors='replace').strip()}"
            )
        while _read_handshake_line(reader) not in (b"\r\n", b"\n"):
            pass
        sock.settimeout(None)
    except HandshakeFailure:
        reader.close()
        sock.close()
        raise
    except OSError as exc:
        reader.close()
        sock.close()
        raise TransportError(f"WebSocket handshake failed: {exc}") from exc

    log.debug("WebSocket connected: %s", ws_url)
    return Connection(sock, reader, url=ws_url)


__all__ = [
    "Connection",
    "Frame",
    "MAX_PAYLOAD_BYTES",
    "OP_BINARY",
    "OP_CLOSE",
    "OP_CONTINUATION",
    "OP_PING",
    "OP_PONG",
    "OP_TEXT",
    "apply_mask",
    "dial",
    "encode_frame",
    "read_frame",
]
