from .css import proxied_css_url, rewrite_css, rewrite_css_urls
from .html import (
    URL_ATTRIBUTES,
    rewrite_html,
    rewrite_meta_refresh,
    rewrite_srcset,
)

__all__ = [
    "URL_ATTRIBUTES",
    "proxied_css_url",
    "rewrite_css",
    "rewrite_css_urls",
    "rewrite_html",
    "rewrite_meta_refresh",
    "rewrite_srcset",
]
