from .site_policy import (
    AGGRESSIVE_DOMAINS,
    DEFAULT_POLICY,
    SITE_POLICIES,
    SitePolicy,
    in_domain_family,
    message_origin_markers,
    policy_for,
    referer_override,
    websocket_origin,
)

__all__ = [
    "AGGRESSIVE_DOMAINS",
    "DEFAULT_POLICY",
    "SITE_POLICIES",
    "SitePolicy",
    "in_domain_family",
    "message_origin_markers",
    "policy_for",
    "referer_override",
    "websocket_origin",
]
