"""
Per-site header policy.

Target sites validate ``Origin``/``Referer`` differently for their pages, CDN
assets and socket endpoints. Instead of branching on hostnames wherever a
header is built, every quirk lives in one row of ``SITE_POLICIES`` and is
evaluated by the functions below. The HTTP pipeline, the WebSocket tunnel and
the preload script generator all read from this table.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass(frozen=True)
class SitePolicy:
    """
    One target site's domain family and its header overrides.

    Attributes:
        name: Short label used in logs.
        family_suffixes: Hostname suffixes of first-party hosts.
        site_root: Primary origin of the site (no trailing slash).
        cdn_suffixes: Asset hosts that only accept the site root as referer.
        socket_origins: ``(hostname, origin)`` pairs for socket endpoints that
            require a specific page origin.
        aggressive_domains: Hosts forced through the proxy even when a URL
            cannot be resolved.
        message_markers: Substrings identifying the site's origins in
            ``postMessage`` target origins.
    """

    name: str
    family_suffixes: Tuple[str, ...]
    site_root: str
    cdn_suffixes: Tuple[str, ...] = ()
    socket_origins: Tuple[Tuple[str, str], ...] = ()
    aggressive_domains: Tuple[str, ...] = ()
    message_markers: Tuple[str, ...] = field(default=())

    def owns(self, hostname: str) -> bool:
        return _matches_suffix(hostname, self.family_suffixes)

    def serves_assets(self, hostname: str) -> bool:
        return _matches_suffix(hostname, self.cdn_suffixes)


BILIBILI = SitePolicy(
    name="bilibili",
    family_suffixes=(".bilibili.com", ".biliapi.net"),
    site_root="https://www.bilibili.com",
    cdn_suffixes=(".hdslb.com", ".akamaized.net"),
    socket_origins=(("chat.bilibili.com", "https://live.bilibili.com"),),
    aggressive_domains=(
        "passport.bilibili.com",
        "account.bilibili.com",
        "api.bilibili.com",
        "data.bilibili.com",
        "hdslb.com",
        "biliapi.net",
    ),
    message_markers=("bilibili.com", "biliapi.net", "hdslb.com"),
)

SITE_POLICIES: Tuple[SitePolicy, ...] = (BILIBILI,)

# Used for socket hosts that match no row
DEFAULT_POLICY = BILIBILI

AGGRESSIVE_DOMAINS = frozenset(
    domain for policy in SITE_POLICIES for domain in policy.aggressive_domains
)


def _matches_suffix(hostname: str, suffixes: Tuple[str, ...]) -> bool:
    host = (hostname or "").lower().rstrip(".")
    for suffix in suffixes:
        bare = suffix.lstrip(".")
        if host == bare or host.endswith("." + bare):
            return True
    return False


def policy_for(hostname: str) -> Optional[SitePolicy]:
    """Return the first policy whose family or CDN hosts cover ``hostname``."""
    for policy in SITE_POLICIES:
        if policy.owns(hostname) or policy.serves_assets(hostname):
            return policy
    return None


def in_domain_family(hostname: str) -> bool:
    return any(policy.owns(hostname) for policy in SITE_POLICIES)


def referer_override(hostname: str) -> Optional[str]:
    """Referer forced for CDN asset hosts, or None when the host has no override."""
    for policy in SITE_POLICIES:
        if policy.serves_assets(hostname):
            return policy.site_root + "/"
    return None


def websocket_origin(hostname: str) -> str:
    """
    Origin presented to a socket endpoint.

    Socket servers reject the proxy's own origin outright, so a first-party
    value is always chosen: the explicit subdomain mapping first, then the
    host's own https root for family members, then the default site root.
    """
    host = (hostname or "").lower()
    for policy in SITE_POLICIES:
        for socket_host, origin in policy.socket_origins:
            if _matches_suffix(host, (socket_host,)):
                return origin
    for policy in SITE_POLICIES:
        if policy.owns(host):
            return f"https://{host}"
    return DEFAULT_POLICY.site_root


def message_origin_markers() -> Tuple[str, ...]:
    markers = []
    for policy in SITE_POLICIES:
        for marker in policy.message_markers:
            if marker not in markers:
                markers.append(marker)
    return tuple(markers)
