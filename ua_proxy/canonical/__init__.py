from .url import (
    HTTP_SCHEMES,
    SOCKET_SCHEMES,
    ProxyContext,
    canonicalize,
    decode_target,
    resolve,
    socket_scheme_for,
    strip_proxy_prefix,
)

__all__ = [
    "HTTP_SCHEMES",
    "SOCKET_SCHEMES",
    "ProxyContext",
    "canonicalize",
    "decode_target",
    "resolve",
    "socket_scheme_for",
    "strip_proxy_prefix",
]
