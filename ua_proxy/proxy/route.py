import logging
from urllib.parse import urljoin

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse, Response, StreamingResponse
from opentelemetry import trace
from starlette.background import BackgroundTask

from ua_proxy.canonical import ProxyContext, canonicalize, decode_target
from ua_proxy.control import RewriteConfig, get_rewrite_config, render_control_panel
from ua_proxy.preload import render_loader_markup
from ua_proxy.rewrite import rewrite_css, rewrite_html
from ua_proxy.utils import format_exception_message, log_exception_with_details
from ua_proxy.vars import PROXY_TIMEOUT

from .headers import (
    CORS_HEADERS,
    REDIRECT_STATUSES,
    build_forward_headers,
    build_response_headers,
    relayed_cookies,
)

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

BODYLESS_METHODS = {"GET", "HEAD"}
JAVASCRIPT_TYPES = ("application/javascript", "text/javascript")


def get_proxy_base(request: Request) -> str:
    """Origin the browser used to reach the proxy, e.g. ``http://localhost:7891``."""
    host = request.headers.get("host") or request.url.netloc
    return f"{request.url.scheme}://{host}"


def get_raw_path(request: Request) -> str:
    """Undecoded request path; embedded target URLs must keep their escapes."""
    raw_path = request.scope.get("raw_path") if hasattr(request, "scope") else None
    if isinstance(raw_path, bytes):
        return raw_path.decode("latin-1")
    return request.url.path


def _with_cookies(response: Response, upstream: httpx.Response) -> Response:
    for cookie in relayed_cookies(upstream.headers.get_list("set-cookie")):
        response.headers.append("set-cookie", cookie)
    return response


def redirect_response(
    upstream: httpx.Response, target_url: str, ctx: ProxyContext
) -> Response:
    """Relay a redirect with its ``Location`` pointing back through the proxy."""
    location = canonicalize(urljoin(target_url, upstream.headers["location"]), ctx)
    headers = dict(CORS_HEADERS)
    headers["location"] = location
    response = Response(status_code=upstream.status_code, headers=headers)
    return _with_cookies(response, upstream)


async def _close(upstream: httpx.Response, client: httpx.AsyncClient) -> None:
    await upstream.aclose()
    await client.aclose()


async def build_body_response(
    upstream: httpx.Response,
    client: httpx.AsyncClient,
    ctx: ProxyContext,
    config: RewriteConfig,
) -> Response:
    """
    Dispatch the upstream body by content type.

    HTML and CSS are buffered and rewritten; JavaScript is buffered and
    relayed byte for byte; everything else is streamed as it arrives, with the
    upstream response and client closed once the stream is exhausted.
    """
    content_type = upstream.headers.get("content-type", "")
    headers = build_response_headers(upstream.headers)

    if "text/html" in content_type:
        await upstream.aread()
        await _close(upstream, client)
        loader = render_loader_markup(ctx.proxy_base, config.model_dump())
        headers["content-type"] = "text/html; charset=utf-8"
        body = rewrite_html(upstream.text, ctx, loader)
    elif "text/css" in content_type:
        await upstream.aread()
        await _close(upstream, client)
        headers["content-type"] = "text/css; charset=utf-8"
        body = rewrite_css(upstream.text, ctx)
    elif any(js_type in content_type for js_type in JAVASCRIPT_TYPES):
        body = await upstream.aread()
        await _close(upstream, client)
    else:
        response = StreamingResponse(
            upstream.aiter_bytes(),
            status_code=upstream.status_code,
            headers=headers,
            background=BackgroundTask(_close, upstream, client),
        )
        return _with_cookies(response, upstream)

    response = Response(content=body, status_code=upstream.status_code, headers=headers)
    return _with_cookies(response, upstream)


async def forward_to_target(request: Request, config: RewriteConfig) -> Response:
    """
    Fetch the target named by the request path and relay it to the browser.

    - ``OPTIONS`` is answered locally with the CORS headers
    - paths naming no target get the control panel
    - request headers are rewritten to look first-party to the target
    - redirects are rewritten, never followed
    - HTML/CSS bodies are rewritten to keep every URL on the proxy
    """
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=dict(CORS_HEADERS))

    proxy_base = get_proxy_base(request)
    target_url = decode_target(
        get_raw_path(request),
        str(request.url.query),
        request.headers.get("referer"),
        proxy_base,
    )
    if target_url is None:
        return HTMLResponse(render_control_panel(proxy_base, config))

    with tracer.start_as_current_span("proxy_request") as span:
        span.set_attribute("proxy.target_url", target_url)
        span.set_attribute("proxy.method", request.method)

        logger.debug(f"[Proxy] {request.method} {request.url.path} -> {target_url}")

        headers = build_forward_headers(request.headers, target_url, proxy_base)
        body = None if request.method in BODYLESS_METHODS else await request.body()
        ctx = ProxyContext(proxy_base=proxy_base, target_base=target_url)

        client = httpx.AsyncClient(
            verify=False,
            follow_redirects=False,
            timeout=httpx.Timeout(PROXY_TIMEOUT),
        )
        upstream = None
        try:
            upstream = await client.send(
                client.build_request(
                    request.method, target_url, headers=headers, content=body
                ),
                stream=True,
            )
            span.set_attribute("proxy.status_code", upstream.status_code)

            if upstream.status_code in REDIRECT_STATUSES and "location" in upstream.headers:
                await _close(upstream, client)
                response = redirect_response(upstream, target_url, ctx)
                span.set_attribute("proxy.rewritten_location", response.headers["location"])
                return response

            return await build_body_response(upstream, client, ctx, config)

        except Exception as e:
            if upstream is not None:
                await upstream.aclose()
            await client.aclose()
            log_exception_with_details(logger, f"[Proxy] {target_url}", e)
            span.set_attribute("proxy.error", format_exception_message(e))
            raise HTTPException(
                status_code=500, detail=f"Proxy Error: {format_exception_message(e)}"
            )


# Register catch-all route for proxying
@router.api_route(
    "/{path:path}",
    methods=["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"],
)
async def proxy_all(
    request: Request, path: str, config: RewriteConfig = Depends(get_rewrite_config)
):
    """Catch-all route that proxies every request to the URL embedded in its path."""
    return await forward_to_target(request, config)
