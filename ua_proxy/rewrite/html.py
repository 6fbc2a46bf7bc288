"""
HTML rewriting.

The document is parsed into a tree (BeautifulSoup with the stdlib
``html.parser`` backend), URL-bearing attributes are rewritten through the
canonicalizer, and the preload loader is injected ahead of every page script.
Script bodies are never touched; URLs produced by scripts are handled by the
preload layer at runtime.
"""

import logging
import re
from typing import Callable, Dict, Tuple

from bs4 import BeautifulSoup, Tag

from ua_proxy.canonical import ProxyContext, canonicalize

logger = logging.getLogger("uvicorn.error")

URL_ATTRIBUTES: Dict[str, Tuple[str, ...]] = {
    "a": ("href",),
    "img": ("src", "data-src", "srcset"),
    "script": ("src", "data-src"),
    "link": ("href",),
    "iframe": ("src",),
    "source": ("src", "srcset"),
    "video": ("src", "poster"),
    "audio": ("src",),
    "form": ("action",),
    "meta": ("content",),
}

META_REFRESH_SPLIT_RE = re.compile(r";(?:\s*url=)", re.IGNORECASE)
REFERRER_META = '<meta name="referrer" content="no-referrer">'


def rewrite_srcset(value: str, to_proxy: Callable[[str], str]) -> str:
    """
    Rewrite each candidate URL of a ``srcset`` value.

    ``"/a.png 1x, /b.png 2x"`` keeps its ``1x``/``2x`` descriptors; only the
    URLs change.
    """
    candidates = []
    for part in value.split(","):
        tokens = part.strip().split()
        if not tokens:
            continue
        url, descriptors = tokens[0], tokens[1:]
        rewritten = to_proxy(url)
        candidates.append(" ".join([rewritten, *descriptors]))
    return ", ".join(candidates)


def rewrite_meta_refresh(content: str, to_proxy: Callable[[str], str]) -> str:
    """Rewrite the URL of a refresh ``content`` value, keeping the delay verbatim."""
    parts = META_REFRESH_SPLIT_RE.split(content, maxsplit=1)
    if len(parts) != 2:
        return content
    delay, url = parts
    return f"{delay}; url={to_proxy(url)}"


def _rewrite_meta(tag: Tag, value: str, to_proxy: Callable[[str], str]) -> None:
    http_equiv = (tag.get("http-equiv") or "").lower()
    name = (tag.get("name") or "").lower()
    prop = tag.get("property") or ""

    if http_equiv == "refresh":
        tag["content"] = rewrite_meta_refresh(value, to_proxy)
    elif name == "referrer":
        tag["content"] = "no-referrer"
    elif prop.startswith("og:") or name.startswith("twitter:"):
        tag["content"] = to_proxy(value)
    # Any other meta carries key/value semantics that must not be disturbed


def _inject(soup: BeautifulSoup, markup: str) -> bool:
    """Insert ``markup`` as early as possible; returns False when there is nowhere to put it."""
    nodes = list(BeautifulSoup(markup, "html.parser").contents)

    head = soup.find("head")
    if head is not None:
        first_script = head.find("script")
        if first_script is not None:
            for node in nodes:
                first_script.insert_before(node)
        else:
            for index, node in enumerate(nodes):
                head.insert(index, node)
        return True

    body = soup.find("body")
    if body is not None:
        for index, node in enumerate(nodes):
            body.insert(index, node)
        return True
    return False


def rewrite_html(html: str, ctx: ProxyContext, loader_markup: str = "") -> str:
    """
    Rewrite a document fetched from ``ctx.target_base``.

    Args:
        html: Decoded document text.
        ctx: Proxy origin and the document's own URL.
        loader_markup: Config bootstrap and preload ``<script>`` tags to inject
            after the referrer policy meta.

    Returns:
        The serialized, rewritten document.
    """
    soup = BeautifulSoup(html, "html.parser")

    def to_proxy(value: str) -> str:
        return canonicalize(value, ctx)

    for tag_name, attributes in URL_ATTRIBUTES.items():
        for tag in soup.find_all(tag_name):
            for attribute in attributes:
                value = tag.get(attribute)
                if not value or not isinstance(value, str):
                    continue
                if tag_name == "meta":
                    _rewrite_meta(tag, value, to_proxy)
                elif attribute == "srcset":
                    tag[attribute] = rewrite_srcset(value, to_proxy)
                else:
                    tag[attribute] = to_proxy(value)

    if not _inject(soup, REFERRER_META + loader_markup):
        logger.debug(
            f"[Rewrite] No <head> or <body> in {ctx.target_base}; loader not injected"
        )

    return str(soup)
