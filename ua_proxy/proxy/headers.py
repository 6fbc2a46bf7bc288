"""
Request and response header policy for the forwarding pipeline.
"""

from typing import Dict, Iterable, List, Mapping, Optional
from urllib.parse import urlsplit

from ua_proxy.canonical import strip_proxy_prefix
from ua_proxy.policy import in_domain_family, referer_override
from ua_proxy.vars import DESKTOP_UA

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

DROPPED_REQUEST_HEADERS = HOP_BY_HOP_HEADERS | {"host", "content-length"}

# Codings httpx can decode (br through the brotli package)
ACCEPT_ENCODING = "gzip, deflate, br"

RELAYED_RESPONSE_HEADERS = ("content-type", "cache-control", "expires")

STRIPPED_RESPONSE_HEADERS = {
    "content-security-policy",
    "content-security-policy-report-only",
    "x-content-security-policy",
    "x-webkit-csp",
    "x-frame-options",
}

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS, PUT, DELETE",
    "Access-Control-Allow-Headers": "*",
    "Access-Control-Allow-Credentials": "true",
}

REDIRECT_STATUSES = {301, 302, 303, 307, 308}

# Cookie attributes that would stop the browser storing the cookie for the proxy origin
_DROPPED_COOKIE_ATTRIBUTES = ("domain",)
_DROPPED_COOKIE_FLAGS = ("secure",)


def _origin_of(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def build_forward_headers(
    inbound: Mapping[str, str], target_url: str, proxy_base: str
) -> Dict[str, str]:
    """
    Build the headers sent upstream for one proxied request.

    The browser's headers describe the proxy (its host, its origin, proxied
    referers); every one of those is rewritten to describe the target site
    instead, and the user agent is pinned to the desktop string.

    Args:
        inbound: Headers received from the browser.
        target_url: Absolute URL being fetched.
        proxy_base: Origin the browser used to reach the proxy.

    Returns:
        Lower-cased header mapping for the upstream request.
    """
    headers: Dict[str, str] = {}
    for name, value in inbound.items():
        name_lower = name.lower()
        if name_lower not in DROPPED_REQUEST_HEADERS:
            headers[name_lower] = value

    target = urlsplit(target_url)
    target_origin = _origin_of(target_url)

    headers["user-agent"] = DESKTOP_UA

    headers["referer"] = (
        strip_proxy_prefix(headers.get("referer"), proxy_base) or target_origin + "/"
    )
    override = referer_override(target.hostname or "")
    if override:
        headers["referer"] = override

    proxy_host = urlsplit(proxy_base).netloc
    origin = headers.get("origin")
    if origin and proxy_host and proxy_host in origin:
        headers["origin"] = target_origin
        referer_host = urlsplit(headers["referer"]).hostname or ""
        if in_domain_family(referer_host):
            headers["origin"] = _origin_of(headers["referer"])

    if headers.get("sec-fetch-site") == "cross-site":
        headers["sec-fetch-site"] = "same-site"

    headers["accept-encoding"] = ACCEPT_ENCODING
    return headers


def rewrite_set_cookie(set_cookie: str) -> str:
    """
    Strip ``Domain`` and ``Secure`` from a Set-Cookie value.

    ``"sid=1; Domain=.bilibili.com; Path=/; Secure; HttpOnly"`` becomes
    ``"sid=1; Path=/; HttpOnly"`` so the browser stores it for the proxy host.
    """
    kept: List[str] = []
    for index, part in enumerate(set_cookie.split(";")):
        attribute = part.strip()
        if not attribute:
            continue
        if index > 0:
            name = attribute.split("=", 1)[0].strip().lower()
            if "=" in attribute and name in _DROPPED_COOKIE_ATTRIBUTES:
                continue
            if "=" not in attribute and name in _DROPPED_COOKIE_FLAGS:
                continue
        kept.append(attribute)
    return "; ".join(kept)


def relayed_cookies(set_cookies: Iterable[str]) -> List[str]:
    return [rewrite_set_cookie(value) for value in set_cookies if value]


def build_response_headers(upstream_headers: Mapping[str, str]) -> Dict[str, str]:
    """
    Select the upstream headers relayed to the browser and add the CORS set.

    Only the safelisted headers are copied, so security policies
    (``STRIPPED_RESPONSE_HEADERS``) and framing headers never reach the page.
    """
    headers: Dict[str, str] = {}
    for name in RELAYED_RESPONSE_HEADERS:
        value: Optional[str] = upstream_headers.get(name)
        if value is not None and name not in STRIPPED_RESPONSE_HEADERS:
            headers[name] = value
    headers.update(CORS_HEADERS)
    return headers
