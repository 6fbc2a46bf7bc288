from .handshake import (
    UpgradeRequest,
    accept_token,
    parse_request_head,
    parse_response_head,
    synthesize_upstream_headers,
)
from .protocol import TunnelProtocol
from .session import (
    TunnelRejected,
    TunnelSession,
    TunnelState,
    open_upstream,
)

__all__ = [
    "TunnelProtocol",
    "TunnelRejected",
    "TunnelSession",
    "TunnelState",
    "UpgradeRequest",
    "accept_token",
    "open_upstream",
    "parse_request_head",
    "parse_response_head",
    "synthesize_upstream_headers",
]
