"""
HTTP/1.1 upgrade handshake parsing and synthesis.

The tunnel never speaks the WebSocket framing protocol; it only rewrites the
two handshake heads and then copies bytes. Heads are decoded as latin-1 so
arbitrary header bytes round-trip unchanged.
"""

import asyncio
import base64
import hashlib
import secrets
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
from urllib.parse import urlsplit

from ua_proxy.canonical import strip_proxy_prefix
from ua_proxy.policy import websocket_origin
from ua_proxy.vars import DESKTOP_UA, WS_READ_BUFFER

WS_GUID = "258EAFA5-E914-47DA-95CA-C5AB0DC85B11"
HEAD_TERMINATOR = b"\r\n\r\n"
MAX_HEAD_SIZE = 64 * 1024

Headers = List[Tuple[str, str]]

# Replaced by the synthesized values, or regenerated for the upstream hop
REPLACED_REQUEST_HEADERS = {
    "host",
    "origin",
    "referer",
    "user-agent",
    "connection",
    "upgrade",
    "sec-websocket-key",
    "sec-websocket-extensions",
    "sec-websocket-accept",
}


@dataclass
class UpgradeRequest:
    method: str
    target: str
    headers: Headers = field(default_factory=list)

    def header(self, name: str) -> Optional[str]:
        name = name.lower()
        for key, value in self.headers:
            if key == name:
                return value
        return None

    @property
    def path(self) -> str:
        return self.target.partition("?")[0]

    @property
    def query(self) -> str:
        return self.target.partition("?")[2]


def _split_header(line: str) -> Tuple[str, str]:
    name, sep, value = line.partition(":")
    if not sep:
        raise ValueError(f"Malformed header line: {line!r}")
    return name.strip(), value.strip()


def parse_request_head(head: bytes) -> UpgradeRequest:
    """Parse an upgrade request head (without the blank line); names are lower-cased."""
    lines = head.decode("latin-1").split("\r\n")
    parts = lines[0].split(" ")
    if len(parts) != 3:
        raise ValueError(f"Malformed request line: {lines[0]!r}")
    method, target, _version = parts
    headers = []
    for line in lines[1:]:
        if line:
            name, value = _split_header(line)
            headers.append((name.lower(), value))
    return UpgradeRequest(method=method, target=target, headers=headers)


def parse_response_head(head: bytes) -> Tuple[int, str, Headers]:
    """Parse an upstream response head; header names keep their original case."""
    lines = head.decode("latin-1").split("\r\n")
    parts = lines[0].split(" ", 2)
    if len(parts) < 2 or not parts[1].isdigit():
        raise ValueError(f"Malformed status line: {lines[0]!r}")
    reason = parts[2] if len(parts) == 3 else ""
    headers = [_split_header(line) for line in lines[1:] if line]
    return int(parts[1]), reason, headers


async def read_head(reader: asyncio.StreamReader) -> Tuple[bytes, bytes]:
    """
    Read up to the end of an HTTP head.

    Returns the head without its terminating blank line and any bytes that
    arrived after it, which belong to the stream that follows.
    """
    buffer = b""
    while HEAD_TERMINATOR not in buffer:
        if len(buffer) > MAX_HEAD_SIZE:
            raise ValueError("Handshake head too large")
        chunk = await reader.read(WS_READ_BUFFER)
        if not chunk:
            raise ConnectionError("Connection closed before handshake completed")
        buffer += chunk
    head, _, rest = buffer.partition(HEAD_TERMINATOR)
    return head, rest


def accept_token(key: str) -> str:
    """``Sec-WebSocket-Accept`` value for a ``Sec-WebSocket-Key``."""
    digest = hashlib.sha1((key + WS_GUID).encode("ascii")).digest()
    return base64.b64encode(digest).decode("ascii")


def new_client_key() -> str:
    return base64.b64encode(secrets.token_bytes(16)).decode("ascii")


def synthesize_upstream_headers(
    request: UpgradeRequest, target_url: str, proxy_base: str
) -> Headers:
    """
    Headers for the upstream upgrade request.

    Inbound headers are copied except those describing the proxy or tied to
    the browser's own handshake; origin, referer and user agent are replaced
    with values the target's socket server accepts.
    """
    target = urlsplit(target_url)
    origin = websocket_origin(target.hostname or "")
    referer = strip_proxy_prefix(request.header("referer"), proxy_base) or origin + "/"

    headers: Headers = [("host", target.netloc)]
    headers.extend(
        (name, value)
        for name, value in request.headers
        if name not in REPLACED_REQUEST_HEADERS
    )
    headers.extend(
        [
            ("origin", origin),
            ("referer", referer),
            ("user-agent", DESKTOP_UA),
            ("connection", "Upgrade"),
            ("upgrade", "websocket"),
        ]
    )
    return headers


def build_upstream_request(target_url: str, headers: Headers, key: str) -> bytes:
    target = urlsplit(target_url)
    path = target.path or "/"
    if target.query:
        path = f"{path}?{target.query}"

    lines = [f"GET {path} HTTP/1.1"]
    lines.extend(f"{name}: {value}" for name, value in headers)
    if not any(name == "sec-websocket-version" for name, _ in headers):
        lines.append("sec-websocket-version: 13")
    lines.append(f"sec-websocket-key: {key}")
    return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")


def build_switching_response(upstream_headers: Headers, client_key: Optional[str]) -> bytes:
    """
    101 head for the browser.

    Upstream headers are relayed verbatim except ``Sec-WebSocket-Accept``,
    which answers the upstream hop's key and is recomputed from the browser's.
    """
    lines = ["HTTP/1.1 101 Switching Protocols"]
    for name, value in upstream_headers:
        if name.lower() == "sec-websocket-accept" and client_key:
            value = accept_token(client_key)
        lines.append(f"{name}: {value}")
    return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")


def build_rejection(status: int, reason: str) -> bytes:
    return f"HTTP/1.1 {status} {reason}\r\n\r\n".encode("latin-1")
