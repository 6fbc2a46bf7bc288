"""
uvicorn integration for the WebSocket tunnel.

uvicorn hands every upgrade request to the protocol class configured as
``ws``: it instantiates it, calls ``connection_made`` with the raw
transport, replays the request head through ``data_received`` and then
switches the transport over. ``TunnelProtocol`` exposes that transport as a
stream pair and runs a ``TunnelSession`` on it, so upgrades never reach the
ASGI app.
"""

import asyncio
import logging

from ua_proxy.vars import WS_READ_BUFFER

from .session import TunnelSession

logger = logging.getLogger("uvicorn.error")


class TunnelProtocol(asyncio.StreamReaderProtocol):
    def __init__(self, config, server_state, app_state=None, _loop=None):
        self.reader = asyncio.StreamReader(limit=WS_READ_BUFFER)
        super().__init__(self.reader)
        self.config = config
        self.server_state = server_state
        self.app_state = app_state
        self.transport = None
        self.writer = None
        self.session = None
        self.task = None

    def connection_made(self, transport) -> None:
        super().connection_made(transport)
        self.transport = transport
        self.server_state.connections.add(self)
        loop = asyncio.get_running_loop()
        self.writer = asyncio.StreamWriter(transport, self, self.reader, loop)
        self.session = TunnelSession(self.reader, self.writer)
        self.task = loop.create_task(self.session.run())

    def connection_lost(self, exc) -> None:
        self.server_state.connections.discard(self)
        if exc is not None:
            logger.debug(f"[Tunnel] Browser connection lost: {exc}")
        super().connection_lost(exc)

    def shutdown(self) -> None:
        """Called by uvicorn on graceful shutdown."""
        if self.transport is not None and not self.transport.is_closing():
            self.transport.close()
