"""
WebSocket tunnel sessions.

A session owns one browser connection (downstream) and, once dialed, one
connection to the real socket server (upstream). It walks a fixed sequence
of states; any failure closes both sides.

    RECEIVED -> DECODED -> SYNTHESIZED -> DIALING -> RELAYED -> PIPING -> CLOSED

Rejections and dial or pipe failures end in ERRORED instead.
A non-101 answer is relayed to the browser and ends in CLOSED.
"""

import asyncio
import logging
import ssl
from enum import Enum
from typing import Awaitable, Callable, Optional, Tuple
from urllib.parse import urlsplit

from opentelemetry import trace

from ua_proxy.canonical import SOCKET_SCHEMES, decode_target
from ua_proxy.utils import log_exception_with_details
from ua_proxy.vars import WS_CONNECT_TIMEOUT, WS_READ_BUFFER

from .handshake import (
    UpgradeRequest,
    build_rejection,
    build_switching_response,
    build_upstream_request,
    new_client_key,
    parse_request_head,
    parse_response_head,
    read_head,
    synthesize_upstream_headers,
)

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

Streams = Tuple[asyncio.StreamReader, asyncio.StreamWriter]
Dialer = Callable[[str, int, bool], Awaitable[Streams]]


class TunnelState(Enum):
    RECEIVED = "received"
    DECODED = "decoded"
    SYNTHESIZED = "synthesized"
    DIALING = "dialing"
    RELAYED = "relayed"
    PIPING = "piping"
    CLOSED = "closed"
    ERRORED = "errored"


class TunnelRejected(Exception):
    """The upgrade request does not name a ws:// or wss:// target."""


def _insecure_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


async def open_upstream(host: str, port: int, secure: bool) -> Streams:
    """Open a TCP (or TLS, certificate not verified) connection to the socket server."""
    if secure:
        return await asyncio.open_connection(
            host, port, ssl=_insecure_context(), server_hostname=host
        )
    return await asyncio.open_connection(host, port)


async def pipe(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    """Copy bytes until EOF, waiting on ``drain`` so a slow reader throttles the writer."""
    while True:
        chunk = await reader.read(WS_READ_BUFFER)
        if not chunk:
            return
        writer.write(chunk)
        await writer.drain()


async def _close_writer(writer: Optional[asyncio.StreamWriter]) -> None:
    if writer is None or writer.is_closing():
        return
    writer.close()
    try:
        await writer.wait_closed()
    except (ConnectionError, OSError) as e:
        logger.debug(f"[Tunnel] Error while closing connection: {e}")


class TunnelSession:
    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        dial: Dialer = open_upstream,
        connect_timeout: float = WS_CONNECT_TIMEOUT,
    ):
        self.downstream_reader = reader
        self.downstream_writer = writer
        self.upstream_reader: Optional[asyncio.StreamReader] = None
        self.upstream_writer: Optional[asyncio.StreamWriter] = None
        self.dial = dial
        self.connect_timeout = connect_timeout

        self.state = TunnelState.RECEIVED
        self.request: Optional[UpgradeRequest] = None
        self.proxy_base = ""
        self.target_url: Optional[str] = None
        self.upstream_headers = []
        self.upstream_status: Optional[int] = None

    def _transition(self, state: TunnelState) -> None:
        logger.debug(f"[Tunnel] {self.target_url or '-'}: {self.state.value} -> {state.value}")
        self.state = state

    async def run(self) -> None:
        """Drive the session from the browser's request head to teardown."""
        with tracer.start_as_current_span("websocket_tunnel") as span:
            try:
                head, leftover = await read_head(self.downstream_reader)
                self.request = parse_request_head(head)
                self._decode()
                span.set_attribute("tunnel.target_url", self.target_url)
                self._synthesize()
                await self._dial()
                upgraded = await self._relay_handshake(leftover)
                span.set_attribute("tunnel.status_code", self.upstream_status)
                if upgraded:
                    await self._pipe()
                self._transition(TunnelState.CLOSED)
            except TunnelRejected as e:
                logger.info(f"[Tunnel] Rejected upgrade: {e}")
                self._transition(TunnelState.ERRORED)
            except asyncio.TimeoutError:
                logger.warning(
                    f"[Tunnel] Timed out after {self.connect_timeout}s connecting to {self.target_url}"
                )
                self._transition(TunnelState.ERRORED)
            except Exception as e:
                log_exception_with_details(
                    logger, f"[Tunnel] {self.target_url or '-'}", e, level=logging.WARNING
                )
                span.set_attribute("tunnel.error", str(e))
                self._transition(TunnelState.ERRORED)
            finally:
                await self.close()

    def _decode(self) -> None:
        host = self.request.header("host") or ""
        self.proxy_base = f"http://{host}"
        self.target_url = decode_target(
            self.request.path,
            self.request.query,
            self.request.header("referer"),
            self.proxy_base,
            schemes=SOCKET_SCHEMES,
        )
        if self.target_url is None:
            raise TunnelRejected(f"No socket target in {self.request.target!r}")
        self._transition(TunnelState.DECODED)

    def _synthesize(self) -> None:
        self.upstream_headers = synthesize_upstream_headers(
            self.request, self.target_url, self.proxy_base
        )
        self._transition(TunnelState.SYNTHESIZED)

    async def _dial(self) -> None:
        self._transition(TunnelState.DIALING)
        target = urlsplit(self.target_url)
        secure = target.scheme.lower() == "wss"
        port = target.port or (443 if secure else 80)

        logger.info(
            f"[Tunnel] {self.target_url} | Origin: {dict(self.upstream_headers).get('origin')}"
        )
        self.upstream_reader, self.upstream_writer = await asyncio.wait_for(
            self.dial(target.hostname, port, secure), self.connect_timeout
        )

    async def _relay_handshake(self, leftover: bytes) -> bool:
        """Complete the upstream handshake and answer the browser; True when upgraded."""
        self.upstream_writer.write(
            build_upstream_request(self.target_url, self.upstream_headers, new_client_key())
        )
        await self.upstream_writer.drain()

        head, pre_read = await asyncio.wait_for(
            read_head(self.upstream_reader), self.connect_timeout
        )
        status, reason, headers = parse_response_head(head)
        self.upstream_status = status
        self._transition(TunnelState.RELAYED)

        if status != 101:
            logger.info(f"[Tunnel] {self.target_url} answered {status} {reason}")
            self.downstream_writer.write(build_rejection(status, reason))
            await self.downstream_writer.drain()
            return False

        self.downstream_writer.write(
            build_switching_response(headers, self.request.header("sec-websocket-key"))
        )
        if pre_read:
            self.downstream_writer.write(pre_read)
        await self.downstream_writer.drain()

        if leftover:
            self.upstream_writer.write(leftover)
            await self.upstream_writer.drain()
        return True

    async def _pipe(self) -> None:
        self._transition(TunnelState.PIPING)
        tasks = {
            asyncio.ensure_future(pipe(self.downstream_reader, self.upstream_writer)),
            asyncio.ensure_future(pipe(self.upstream_reader, self.downstream_writer)),
        }
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            error = task.exception()
            if error is not None:
                raise error

    async def close(self) -> None:
        """Tear down both sides; safe to call more than once."""
        await _close_writer(self.upstream_writer)
        await _close_writer(self.downstream_writer)

