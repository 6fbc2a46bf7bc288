from .headers import (
    CORS_HEADERS,
    REDIRECT_STATUSES,
    build_forward_headers,
    build_response_headers,
    rewrite_set_cookie,
)
from .route import forward_to_target, router

__all__ = [
    "CORS_HEADERS",
    "REDIRECT_STATUSES",
    "build_forward_headers",
    "build_response_headers",
    "forward_to_target",
    "rewrite_set_cookie",
    "router",
]
