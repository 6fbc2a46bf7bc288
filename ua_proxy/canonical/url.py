"""
Proxy URL canonicalization.

Every URL the proxy hands to the browser, and every URL the injected preload
script lets a page use, takes one of two forms: left untouched (``data:``,
``blob:``, ``javascript:`` and fragment references) or
``<proxy base>/<absolute target URL>``. ``canonicalize`` produces that form,
``decode_target`` reverses it for inbound requests.

The preload script carries a JavaScript port of ``canonicalize``; both must
change together.
"""

import re
from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import urljoin, urlsplit

from ua_proxy.policy import AGGRESSIVE_DOMAINS

PASSTHROUGH_RE = re.compile(r"^(data:|blob:|javascript:|#)", re.IGNORECASE)
ABSOLUTE_RE = re.compile(r"^(https?|wss?)://", re.IGNORECASE)
PROXIABLE_SCHEMES = frozenset({"http", "https", "ws", "wss"})
HTTP_SCHEMES = ("http", "https")
SOCKET_SCHEMES = ("ws", "wss")
EMBEDDED_MARKERS = ("/http://", "/https://", "/ws://", "/wss://")

# "https:/host/path" survives some clients that collapse "//" in paths
_COLLAPSED_SCHEME_RE = re.compile(r"^((?:https?|wss?):)/(?!/)", re.IGNORECASE)


@dataclass(frozen=True)
class ProxyContext:
    """
    Where a URL is being emitted.

    Attributes:
        proxy_base: Origin the proxy is reachable under, e.g. ``http://localhost:7891``.
        target_base: Absolute URL of the resource the value was found in.
        page_origin: Origin the browser believes it is on, when it differs
            from ``proxy_base`` (same host behind another port, for example).
    """

    proxy_base: str
    target_base: str
    page_origin: Optional[str] = None

    def owns(self, url: str) -> bool:
        return _under(url, self.proxy_base) or _under(url, self.page_origin)


def _under(url: str, origin: Optional[str]) -> bool:
    """True when ``url`` is on ``origin`` itself, not on a longer host or port."""
    if not origin or not url.startswith(origin):
        return False
    return url[len(origin):len(origin) + 1] in ("", "/", "?", "#")


def socket_scheme_for(base: str) -> str:
    """Scheme assumed for a protocol-relative URL found under ``base``."""
    lowered = (base or "").lower()
    if lowered.startswith("wss"):
        return "wss:"
    if lowered.startswith("ws"):
        return "ws:"
    return "https:"


def resolve(raw: str, base: str) -> str:
    """
    Resolve ``raw`` against ``base`` into an absolute proxiable URL.

    Raises ValueError when the result is malformed, has no host, or uses a
    scheme the proxy cannot carry.
    """
    absolute = urljoin(base, raw)
    parts = urlsplit(absolute)
    if parts.scheme.lower() not in PROXIABLE_SCHEMES or not parts.hostname:
        raise ValueError(f"Cannot proxy {raw!r} relative to {base!r}")
    # Accessing .port validates it
    parts.port
    return absolute


def _wrap(absolute: str, ctx: ProxyContext) -> str:
    if ctx.owns(absolute):
        return absolute
    return f"{ctx.proxy_base}/{absolute}"


def _is_canonical(url: str, ctx: ProxyContext) -> bool:
    return ctx.owns(url) and any(marker in url for marker in EMBEDDED_MARKERS)


def _names_aggressive_domain(url: str) -> bool:
    return any(domain in url for domain in AGGRESSIVE_DOMAINS)


def canonicalize(raw, ctx: ProxyContext):
    """Map any URL form a page can produce onto ``proxy_base/<absolute URL>``."""
    if not raw or not isinstance(raw, str):
        return raw

    url = raw.strip()
    if PASSTHROUGH_RE.match(url):
        return url
    if _is_canonical(url, ctx):
        return url

    target = url
    if url.startswith("//"):
        target = socket_scheme_for(ctx.target_base) + url
    if ABSOLUTE_RE.match(target):
        return _wrap(target, ctx)

    try:
        return _wrap(resolve(target, ctx.target_base), ctx)
    except ValueError:
        if _names_aggressive_domain(url) and not (
            url.startswith("http") or url.startswith("/")
        ):
            return f"{ctx.proxy_base}/https://{url}"
        return url


def _host_of(proxy_base: str) -> str:
    return urlsplit(proxy_base).netloc or proxy_base


def strip_proxy_prefix(referer: Optional[str], proxy_base: str) -> Optional[str]:
    """
    Recover the pre-proxy URL from a proxied ``Referer``.

    ``http://localhost:7891/https://www.bilibili.com/video`` becomes
    ``https://www.bilibili.com/video``; anything not under the proxy yields None.
    """
    if not referer:
        return None
    pattern = (
        r"^[a-zA-Z][a-zA-Z0-9+.-]*://"
        + re.escape(_host_of(proxy_base))
        + r"/((?:https?|wss?)://.*)$"
    )
    match = re.match(pattern, referer)
    return match.group(1) if match else None


def decode_target(
    raw_path: str,
    query: str = "",
    referer: Optional[str] = None,
    proxy_base: str = "",
    schemes: Tuple[str, ...] = HTTP_SCHEMES,
) -> Optional[str]:
    """
    Turn an inbound request path back into the absolute target URL.

    A path that is not itself an absolute URL is treated as a root-relative
    request made by a proxied page and resolved against that page's target,
    taken from the ``Referer``. Returns None when neither works or the
    resulting scheme is not in ``schemes``; HTTP callers then serve the
    control panel, the tunnel drops the socket.
    """
    remainder = raw_path[1:] if raw_path.startswith("/") else raw_path
    remainder = _COLLAPSED_SCHEME_RE.sub(r"\1//", remainder)
    if query:
        remainder = f"{remainder}?{query}"

    if remainder and not ABSOLUTE_RE.match(remainder):
        referer_target = strip_proxy_prefix(referer, proxy_base)
        if referer_target and referer_target.startswith("http"):
            try:
                remainder = resolve("/" + remainder, referer_target)
            except ValueError:
                return None

    match = ABSOLUTE_RE.match(remainder or "")
    if not match or match.group(1).lower() not in schemes:
        return None
    return remainder
