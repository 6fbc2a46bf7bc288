"""
Rewrite rules applied by the preload script, as pure functions.

Each hook in the generated script calls a JavaScript helper whose behaviour is
defined here first. Keeping the Python versions lets the rules be tested
without a browser; the tables below are serialized into the script so both
sides share one definition.
"""

import re
from typing import Callable, Iterable, Optional
from urllib.parse import urlsplit, urlunsplit

from ua_proxy.rewrite import rewrite_css_urls, rewrite_meta_refresh, rewrite_srcset
from ua_proxy.rewrite.css import SKIPPED_CSS_URL_RE

URL_ATTRIBUTE_NAMES = (
    "src",
    "href",
    "srcset",
    "data-src",
    "data-url",
    "data-original",
    "data-thumbnail",
    "action",
)

CSS_URL_PROPERTIES = (
    "background",
    "background-image",
    "border-image",
    "list-style-image",
    "content",
)

ELEMENT_PROPERTIES = (
    ("HTMLImageElement", ("src", "srcset")),
    ("HTMLScriptElement", ("src",)),
    ("HTMLLinkElement", ("href",)),
    ("HTMLAnchorElement", ("href",)),
    ("HTMLIFrameElement", ("src",)),
    ("HTMLSourceElement", ("src", "srcset")),
    ("HTMLVideoElement", ("src", "poster")),
    ("HTMLAudioElement", ("src",)),
    ("HTMLFormElement", ("action",)),
)

LOCATION_COMPONENTS = ("hostname", "protocol", "port", "host")

USER_AGENT_DATA = {
    "brands": [
        {"brand": "Not_A Brand", "version": "8"},
        {"brand": "Chromium", "version": "120"},
        {"brand": "Google Chrome", "version": "120"},
    ],
    "mobile": False,
    "platform": "Windows",
}

HIGH_ENTROPY_VALUES = {
    "architecture": "x86",
    "bitness": "64",
    "model": "",
    "platformVersion": "10.0.0",
    "uaFullVersion": "120.0.0.0",
}

PAGE_TARGET_RE = re.compile(r"^https?://[^/]+/((?:https?|wss?)://.*)$", re.IGNORECASE)

__all__ = [
    "CSS_URL_PROPERTIES",
    "ELEMENT_PROPERTIES",
    "HIGH_ENTROPY_VALUES",
    "LOCATION_COMPONENTS",
    "URL_ATTRIBUTE_NAMES",
    "USER_AGENT_DATA",
    "coerce_socket_url",
    "page_target",
    "relax_target_origin",
    "relocate",
    "rewrite_attribute",
    "rewrite_css_value",
    "rewrite_meta_refresh",
    "rewrite_srcset",
]


def page_target(location_href: str) -> Optional[str]:
    """Real target URL of a proxied page location, or None for unproxied pages."""
    match = PAGE_TARGET_RE.match(location_href or "")
    return match.group(1) if match else None


def rewrite_attribute(name: str, value, to_proxy: Callable[[str], str]):
    """``setAttribute`` rule: only allowlisted URL attributes are rewritten."""
    if not isinstance(value, str):
        return value
    lowered = name.lower()
    if lowered == "srcset":
        return rewrite_srcset(value, to_proxy)
    if lowered in URL_ATTRIBUTE_NAMES:
        return to_proxy(value)
    return value


def rewrite_css_value(prop: str, value, to_proxy: Callable[[str], str]):
    """CSSOM ``setProperty`` rule for URL-bearing properties."""
    if prop not in CSS_URL_PROPERTIES or not isinstance(value, str):
        return value
    if "url(" not in value:
        return value

    def _token(raw: str) -> Optional[str]:
        trimmed = raw.strip()
        if not trimmed or SKIPPED_CSS_URL_RE.match(trimmed):
            return None
        return to_proxy(trimmed)

    return rewrite_css_urls(value, _token)


def coerce_socket_url(proxied: str, page_host: str, proxy_base: str) -> str:
    """
    Give a canonicalized socket URL a ws/wss scheme.

    URLs on the proxy's own host take the socket scheme matching the proxy
    origin; any other http(s) URL is mapped http->ws, https->wss.
    """
    if not isinstance(proxied, str) or not re.match(r"^https?://", proxied, re.I):
        return proxied
    host = urlsplit(proxied).netloc
    proxy_host = urlsplit(proxy_base).netloc
    if host and host in {page_host, proxy_host}:
        scheme = "wss" if proxy_base.lower().startswith("https:") else "ws"
        return re.sub(r"^https?", scheme, proxied, count=1, flags=re.I)
    return re.sub(r"^http", "ws", proxied, count=1, flags=re.I)


def relax_target_origin(
    target_origin, page_origin: str, markers: Iterable[str]
):
    """
    ``postMessage`` target origin rule.

    The page believes its origin is the proxy's, so messages aimed at the real
    site's origins would be dropped; those, and missing origins, become ``*``.
    """
    if target_origin is None or target_origin == "undefined":
        return "*"
    if (
        isinstance(target_origin, str)
        and target_origin != "*"
        and not target_origin.startswith(page_origin)
        and any(marker in target_origin for marker in markers)
    ):
        return "*"
    return target_origin


def relocate(current_target: str, component: str, value: str) -> str:
    """
    Apply a Location component assignment to the real target URL.

    ``relocate("https://a.com/x", "hostname", "b.com")`` -> ``https://b.com/x``.
    """
    parts = urlsplit(current_target)
    scheme, netloc = parts.scheme, parts.netloc
    hostname = parts.hostname or ""
    port = parts.port

    if component == "protocol":
        scheme = value.rstrip(":").lower()
    elif component == "hostname":
        netloc = f"{value}:{port}" if port else value
    elif component == "port":
        netloc = f"{hostname}:{value}" if value else hostname
    elif component == "host":
        netloc = value
    else:
        raise ValueError(f"Unsupported location component: {component}")

    return urlunsplit((scheme, netloc, parts.path, parts.query, parts.fragment))
