import pytest
from unittest.mock import AsyncMock, Mock, patch

from ua_proxy.tunnel import TunnelProtocol


@pytest.fixture
def server_state():
    state = Mock()
    state.connections = set()
    return state


@pytest.fixture
def transport():
    transport = Mock()
    transport.is_closing.return_value = False
    transport.get_extra_info.return_value = None
    return transport


@pytest.mark.asyncio
async def test_connection_runs_session_on_stream_pair(server_state, transport):
    with patch("ua_proxy.tunnel.protocol.TunnelSession") as session_cls:
        session_cls.return_value.run = AsyncMock()
        protocol = TunnelProtocol(config=Mock(), server_state=server_state)

        protocol.connection_made(transport)
        await protocol.task

    assert protocol in server_state.connections
    session_cls.assert_called_once_with(protocol.reader, protocol.writer)
    session_cls.return_value.run.assert_awaited_once()


@pytest.mark.asyncio
async def test_replayed_head_reaches_reader(server_state, transport):
    with patch("ua_proxy.tunnel.protocol.TunnelSession") as session_cls:
        session_cls.return_value.run = AsyncMock()
        protocol = TunnelProtocol(config=Mock(), server_state=server_state)
        protocol.connection_made(transport)
        await protocol.task

    protocol.data_received(b"GET /wss://a.example/ HTTP/1.1\r\n\r\n")

    assert await protocol.reader.read(4) == b"GET "


@pytest.mark.asyncio
async def test_shutdown_and_connection_lost(server_state, transport):
    with patch("ua_proxy.tunnel.protocol.TunnelSession") as session_cls:
        session_cls.return_value.run = AsyncMock()
        protocol = TunnelProtocol(config=Mock(), server_state=server_state)
        protocol.connection_made(transport)
        await protocol.task

    protocol.shutdown()
    transport.close.assert_called_once()

    protocol.connection_lost(None)
    assert protocol not in server_state.connections
