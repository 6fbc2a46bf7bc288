import re
from typing import Callable, Optional

from ua_proxy.canonical import ProxyContext, canonicalize

# url( 'x' ), url("x"), url(x)
CSS_URL_RE = re.compile(r"""url\s*\(\s*['"]?(.*?)['"]?\s*\)""")
SKIPPED_CSS_URL_RE = re.compile(r"^(data:|blob:|#|javascript:)", re.IGNORECASE)


def proxied_css_url(value: str, ctx: ProxyContext) -> Optional[str]:
    """
    Proxied form of one ``url(...)`` value, or None to leave the token alone.

    Protocol-relative values are taken as https regardless of the stylesheet's
    own scheme.
    """
    value = value.strip()
    if not value or SKIPPED_CSS_URL_RE.match(value):
        return None
    if value.startswith("//"):
        value = "https:" + value
    proxied = canonicalize(value, ctx)
    if proxied == value and not ctx.owns(value):
        # Unresolvable; keep the original token
        return None
    return proxied


def rewrite_css_urls(text: str, to_proxy: Callable[[str], Optional[str]]) -> str:
    """Rewrite every ``url(...)`` token in ``text`` through ``to_proxy``."""

    def _replace(match: re.Match) -> str:
        proxied = to_proxy(match.group(1))
        if proxied is None:
            return match.group(0)
        return f'url("{proxied}")'

    return CSS_URL_RE.sub(_replace, text)


def rewrite_css(text: str, ctx: ProxyContext) -> str:
    """Rewrite a stylesheet fetched from ``ctx.target_base``."""
    return rewrite_css_urls(text, lambda value: proxied_css_url(value, ctx))
