import pytest
from unittest.mock import AsyncMock, Mock, patch

import httpx
from fastapi.testclient import TestClient
from httpx import AsyncClient

from ua_proxy.vars import CONFIG_API_PATH, METRICS_PATH, PRELOAD_PATH


@pytest.fixture(scope="session")
def test_client():
    from ua_proxy.server import app

    with TestClient(app) as client:
        yield client


def test_root_serves_control_panel(test_client):
    response = test_client.get("/")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    assert "UA Proxy" in response.text


def test_preload_route_wins_over_catch_all(test_client):
    response = test_client.get(PRELOAD_PATH)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/javascript")


def test_metrics_exposed(test_client):
    test_client.get("/")
    response = test_client.get(METRICS_PATH)

    assert response.status_code == 200
    assert "fastapi_app_info" in response.text


def test_config_rejects_non_boolean(test_client):
    response = test_client.post(CONFIG_API_PATH, json={"processLinks": "yes"})

    assert response.status_code == 400


def test_proxied_page_gets_loader(test_client):
    upstream = httpx.Response(
        200,
        headers={"content-type": "text/html; charset=utf-8"},
        content=b"<html><head><title>t</title></head><body><a href='/a'>a</a></body></html>",
    )
    with patch.object(AsyncClient, "send", new_callable=AsyncMock) as send:
        send.return_value = upstream
        response = test_client.get("/https://example.com/")

    assert response.status_code == 200
    assert f'<script src="{PRELOAD_PATH}"></script>' in response.text
    assert send.await_args.args[0].url == "https://example.com/"


class TestRelaySpanExporter:
    def span(self, name, **attributes):
        span = Mock()
        span.name = name
        span.attributes = attributes
        return span

    def test_drops_per_chunk_spans(self):
        from opentelemetry.sdk.trace.export import SpanExportResult
        from ua_proxy.server import RelaySpanExporter

        inner = Mock()
        inner.export.return_value = SpanExportResult.SUCCESS
        request_span = self.span("proxy_request", **{"http.target": "/https://example.com/"})
        tunnel_span = self.span("websocket_tunnel")
        body_chunk = self.span("GET http send", **{"asgi.event.type": "http.response.body"})
        upload_chunk = self.span("POST http receive", **{"asgi.event.type": "http.request"})

        result = RelaySpanExporter(inner).export(
            [request_span, body_chunk, tunnel_span, upload_chunk]
        )

        assert result == SpanExportResult.SUCCESS
        inner.export.assert_called_once_with([request_span, tunnel_span])

    def test_batch_of_only_chunks_is_not_forwarded(self):
        from opentelemetry.sdk.trace.export import SpanExportResult
        from ua_proxy.server import RelaySpanExporter

        inner = Mock()
        chunk = self.span("GET http send", **{"asgi.event.type": "http.response.body"})

        assert RelaySpanExporter(inner).export([chunk]) == SpanExportResult.SUCCESS
        inner.export.assert_not_called()

    def test_span_without_attributes_is_kept(self):
        from ua_proxy.server import is_chunk_span

        span = self.span("websocket_tunnel")
        span.attributes = None

        assert not is_chunk_span(span)
