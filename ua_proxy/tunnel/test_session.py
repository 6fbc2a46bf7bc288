"""
Tests for tunnel sessions, using in-memory stream pairs for both sides.
"""

import asyncio

import pytest

from ua_proxy.tunnel import TunnelSession, TunnelState, accept_token
from ua_proxy.vars import DESKTOP_UA

BROWSER_KEY = "dGhlIHNhbXBsZSBub25jZQ=="

UPSTREAM_101 = (
    b"HTTP/1.1 101 Switching Protocols\r\n"
    b"Upgrade: websocket\r\n"
    b"Connection: Upgrade\r\n"
    b"Sec-WebSocket-Accept: answer-for-upstream-key\r\n\r\n"
)


class FakeWriter:
    def __init__(self):
        self.buffer = bytearray()
        self.closed = False

    def write(self, data):
        self.buffer += data

    async def drain(self):
        pass

    def close(self):
        self.closed = True

    def is_closing(self):
        return self.closed

    async def wait_closed(self):
        pass


class FakeDialer:
    def __init__(self, *chunks):
        self.chunks = chunks
        self.calls = []
        self.writer = FakeWriter()

    async def __call__(self, host, port, secure):
        self.calls.append((host, port, secure))
        reader = asyncio.StreamReader()
        for chunk in self.chunks:
            reader.feed_data(chunk)
        reader.feed_eof()
        return reader, self.writer


def upgrade_head(path="/wss://broadcast.chat.bilibili.com/sub", *extra):
    lines = [
        f"GET {path} HTTP/1.1",
        "host: localhost:7891",
        "connection: Upgrade",
        "upgrade: websocket",
        "sec-websocket-version: 13",
        f"sec-websocket-key: {BROWSER_KEY}",
        "sec-websocket-extensions: permessage-deflate; client_max_window_bits",
        "origin: http://localhost:7891",
        "user-agent: Mobile Safari",
        "cookie: a=1",
        *extra,
    ]
    return ("\r\n".join(lines) + "\r\n\r\n").encode()


def browser(*chunks):
    reader = asyncio.StreamReader()
    for chunk in chunks:
        reader.feed_data(chunk)
    reader.feed_eof()
    return reader, FakeWriter()


class TestUpgrade:
    @pytest.mark.asyncio
    async def test_full_tunnel(self):
        reader, writer = browser(upgrade_head(), b"client-frame")
        dialer = FakeDialer(UPSTREAM_101, b"server-frame")
        session = TunnelSession(reader, writer, dial=dialer)

        await session.run()

        assert dialer.calls == [("broadcast.chat.bilibili.com", 443, True)]
        assert session.state is TunnelState.CLOSED

        upstream = bytes(dialer.writer.buffer)
        assert upstream.startswith(b"GET /sub HTTP/1.1\r\n")
        assert b"host: broadcast.chat.bilibili.com\r\n" in upstream
        assert b"origin: https://live.bilibili.com\r\n" in upstream
        assert f"user-agent: {DESKTOP_UA}\r\n".encode() in upstream
        assert b"cookie: a=1\r\n" in upstream
        assert b"permessage-deflate" not in upstream
        assert BROWSER_KEY.encode() not in upstream
        assert b"sec-websocket-key: " in upstream
        assert upstream.endswith(b"\r\n\r\nclient-frame")

        downstream = bytes(writer.buffer)
        assert downstream.startswith(b"HTTP/1.1 101 Switching Protocols\r\n")
        assert f"Sec-WebSocket-Accept: {accept_token(BROWSER_KEY)}\r\n".encode() in downstream
        assert b"answer-for-upstream-key" not in downstream
        assert downstream.endswith(b"\r\n\r\nserver-frame")

        assert writer.closed
        assert dialer.writer.closed

    @pytest.mark.asyncio
    async def test_plain_socket_with_port(self):
        reader, writer = browser(upgrade_head("/ws://echo.example.org:8080/chat?room=1"))
        dialer = FakeDialer(UPSTREAM_101)
        session = TunnelSession(reader, writer, dial=dialer)

        await session.run()

        assert dialer.calls == [("echo.example.org", 8080, False)]
        assert dialer.writer.buffer.startswith(b"GET /chat?room=1 HTTP/1.1\r\n")
        assert b"origin: https://www.bilibili.com\r\n" in dialer.writer.buffer

    @pytest.mark.asyncio
    async def test_non_101_status_relayed(self):
        reader, writer = browser(upgrade_head())
        dialer = FakeDialer(b"HTTP/1.1 403 Forbidden\r\nContent-Length: 0\r\n\r\n")
        session = TunnelSession(reader, writer, dial=dialer)

        await session.run()

        assert bytes(writer.buffer) == b"HTTP/1.1 403 Forbidden\r\n\r\n"
        assert session.upstream_status == 403
        assert session.state is TunnelState.CLOSED
        assert writer.closed
        assert dialer.writer.closed


class TestFailures:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "path", ["/https://example.com/page", "/chat", "/"]
    )
    async def test_non_socket_target_rejected_silently(self, path):
        reader, writer = browser(upgrade_head(path))
        dialer = FakeDialer(UPSTREAM_101)
        session = TunnelSession(reader, writer, dial=dialer)

        await session.run()

        assert dialer.calls == []
        assert bytes(writer.buffer) == b""
        assert writer.closed
        assert session.state is TunnelState.ERRORED

    @pytest.mark.asyncio
    async def test_dial_timeout_closes_browser(self):
        async def hang(host, port, secure):
            await asyncio.sleep(10)

        reader, writer = browser(upgrade_head())
        session = TunnelSession(reader, writer, dial=hang, connect_timeout=0.01)

        await session.run()

        assert bytes(writer.buffer) == b""
        assert writer.closed
        assert session.state is TunnelState.ERRORED

    @pytest.mark.asyncio
    async def test_dial_error_closes_browser(self):
        async def refuse(host, port, secure):
            raise ConnectionRefusedError("refused")

        reader, writer = browser(upgrade_head())
        session = TunnelSession(reader, writer, dial=refuse)

        await session.run()

        assert bytes(writer.buffer) == b""
        assert writer.closed
        assert session.state is TunnelState.ERRORED

    @pytest.mark.asyncio
    async def test_upstream_closes_during_handshake(self):
        reader, writer = browser(upgrade_head())
        dialer = FakeDialer()
        session = TunnelSession(reader, writer, dial=dialer)

        await session.run()

        assert bytes(writer.buffer) == b""
        assert writer.closed
        assert dialer.writer.closed
        assert session.state is TunnelState.ERRORED

    @pytest.mark.asyncio
    async def test_pipe_error_tears_down_both_sides(self):
        upstream_reader = asyncio.StreamReader()
        upstream_reader.feed_data(UPSTREAM_101)
        upstream_writer = FakeWriter()

        class ResettingWriter(FakeWriter):
            def write(self, data):
                if data.startswith(b"HTTP/1.1 101"):
                    upstream_reader.feed_data(b"late-frame")
                elif data == b"late-frame":
                    raise ConnectionResetError("browser gone")
                super().write(data)

        async def dial(host, port, secure):
            return upstream_reader, upstream_writer

        reader = asyncio.StreamReader()
        reader.feed_data(upgrade_head())
        writer = ResettingWriter()
        session = TunnelSession(reader, writer, dial=dial)

        await session.run()

        assert session.state is TunnelState.ERRORED
        assert b"late-frame" not in writer.buffer
        assert writer.closed
        assert upstream_writer.closed
