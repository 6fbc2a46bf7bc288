"""
Generation of the preload script and the bootstrap markup injected into pages.

The script is one IIFE: shared constants serialized from Python tables, the
client-side canonicalizer (a mirror of ``ua_proxy.canonical.canonicalize``),
rule helpers mirroring ``ua_proxy.preload.rules``, and every hook of
``HOOKS`` installed through ``install`` so each surface fails on its own.
"""

import json
from functools import lru_cache
from typing import Any, Dict

from ua_proxy.canonical.url import EMBEDDED_MARKERS
from ua_proxy.policy import AGGRESSIVE_DOMAINS, message_origin_markers
from ua_proxy.vars import PRELOAD_PATH

from .hooks import HOOKS
from .rules import (
    CSS_URL_PROPERTIES,
    ELEMENT_PROPERTIES,
    HIGH_ENTROPY_VALUES,
    LOCATION_COMPONENTS,
    URL_ATTRIBUTE_NAMES,
    USER_AGENT_DATA,
)

HELPERS = r"""
var CONFIG = window.__PROXY_CONFIG__ || {};
var PROXY_BASE = CONFIG.proxyBase || window.location.origin;
var PROCESS_LINKS = !(CONFIG.config && CONFIG.config.processLinks === false);
var PROXY_HOST = PROXY_BASE.replace(/^[a-z]+:\/\//i, '').split('/')[0];
var PROXY_SOCKET_SCHEME = /^https:/i.test(PROXY_BASE) ? 'wss' : 'ws';
var PASSTHROUGH = /^(data:|blob:|javascript:|#)/i;
var ABSOLUTE = /^(https?|wss?):\/\//i;
var PROXIABLE = /^(https?|wss?):$/i;
var PAGE_TARGET = /^https?:\/\/[^\/]+\/((?:https?|wss?):\/\/.*)$/i;
var CSS_URL = /url\s*\(\s*['"]?(.*?)['"]?\s*\)/g;
var SKIPPED_CSS_URL = /^(data:|blob:|#|javascript:)/i;
var META_REFRESH = /;(?:\s*url=)/i;

function under(url, origin) {
  if (url.indexOf(origin) !== 0) return false;
  var next = url.charAt(origin.length);
  return next === '' || next === '/' || next === '?' || next === '#';
}

function owns(url) {
  return under(url, PROXY_BASE) || under(url, window.location.origin);
}

function currentTarget() {
  var match = window.location.href.match(PAGE_TARGET);
  return match ? match[1] : window.location.origin;
}

function wrap(absolute) {
  return owns(absolute) ? absolute : PROXY_BASE + '/' + absolute;
}

function isCanonical(url) {
  return owns(url) && EMBEDDED_MARKERS.some(function (marker) {
    return url.indexOf(marker) !== -1;
  });
}

function namesAggressiveDomain(url) {
  return AGGRESSIVE_DOMAINS.some(function (domain) {
    return url.indexOf(domain) !== -1;
  });
}

function proxyUrl(raw) {
  if (typeof URL !== 'undefined' && raw instanceof URL) raw = raw.href;
  if (!raw || typeof raw !== 'string') return raw;
  var url = raw.trim();
  if (PASSTHROUGH.test(url) || isCanonical(url)) return url;
  var base = currentTarget();
  try {
    var target = url;
    if (url.indexOf('//') === 0) {
      var scheme = /^wss:/i.test(base) ? 'wss:' : (/^ws:/i.test(base) ? 'ws:' : 'https:');
      target = scheme + url;
    }
    if (ABSOLUTE.test(target)) return wrap(target);
    var resolved = new URL(target, base);
    if (!PROXIABLE.test(resolved.protocol) || !resolved.hostname) {
      throw new TypeError('unproxiable url');
    }
    return wrap(resolved.href);
  } catch (e) {
    if (namesAggressiveDomain(url) && url.indexOf('http') !== 0 && url.charAt(0) !== '/') {
      return PROXY_BASE + '/https://' + url;
    }
    return url;
  }
}

function rewriteSrcset(value) {
  if (typeof value !== 'string') return value;
  return value.split(',')
    .map(function (part) { return part.trim().split(/\s+/); })
    .filter(function (tokens) { return tokens[0]; })
    .map(function (tokens) { return [proxyUrl(tokens[0])].concat(tokens.slice(1)).join(' '); })
    .join(', ');
}

function rewriteMetaRefresh(content) {
  var match = META_REFRESH.exec(content);
  if (!match) return content;
  var url = content.slice(match.index + match[0].length);
  return content.slice(0, match.index) + '; url=' + proxyUrl(url);
}

function rewriteAttribute(name, value) {
  if (typeof value !== 'string') return value;
  var lowered = String(name).toLowerCase();
  if (lowered === 'srcset') return rewriteSrcset(value);
  if (URL_ATTRIBUTES.indexOf(lowered) !== -1) return proxyUrl(value);
  return value;
}

function rewriteCssValue(value) {
  return value.replace(CSS_URL, function (match, url) {
    var trimmed = url.trim();
    if (!trimmed || SKIPPED_CSS_URL.test(trimmed)) return match;
    return 'url("' + proxyUrl(trimmed) + '")';
  });
}

function coerceSocketUrl(proxied) {
  if (typeof proxied !== 'string' || !/^https?:\/\//i.test(proxied)) return proxied;
  var host = proxied.replace(/^https?:\/\//i, '').split('/')[0];
  if (host && (host === window.location.host || host === PROXY_HOST)) {
    return proxied.replace(/^https?/i, PROXY_SOCKET_SCHEME);
  }
  return proxied.replace(/^http/i, 'ws');
}

function relaxTargetOrigin(targetOrigin) {
  if (targetOrigin === undefined || targetOrigin === null || targetOrigin === 'undefined') {
    return '*';
  }
  if (typeof targetOrigin === 'string' && targetOrigin !== '*' &&
      targetOrigin.indexOf(window.location.origin) !== 0 &&
      MESSAGE_MARKERS.some(function (marker) { return targetOrigin.indexOf(marker) !== -1; })) {
    return '*';
  }
  return targetOrigin;
}

function installLoader(doc) {
  var parent = doc.head || doc.documentElement;
  var bootstrap = doc.createElement('script');
  bootstrap.textContent = 'window.__PROXY_CONFIG__ = ' +
    JSON.stringify({ proxyBase: PROXY_BASE, config: CONFIG.config || {} }) + ';';
  parent.appendChild(bootstrap);
  var loader = doc.createElement('script');
  loader.src = PROXY_BASE + PRELOAD_PATH;
  parent.appendChild(loader);
}

function install(surface, hook) {
  try {
    hook();
  } catch (e) {
    if (window.console && console.debug) console.debug('[proxy] hook failed: ' + surface, e);
  }
}

window.__PROXY_URL__ = proxyUrl;
"""


def _constants() -> str:
    values = {
        "AGGRESSIVE_DOMAINS": sorted(AGGRESSIVE_DOMAINS),
        "MESSAGE_MARKERS": list(message_origin_markers()),
        "EMBEDDED_MARKERS": list(EMBEDDED_MARKERS),
        "URL_ATTRIBUTES": list(URL_ATTRIBUTE_NAMES),
        "CSS_URL_PROPERTIES": list(CSS_URL_PROPERTIES),
        "ELEMENT_PROPERTIES": [[name, list(props)] for name, props in ELEMENT_PROPERTIES],
        "LOCATION_COMPONENTS": list(LOCATION_COMPONENTS),
        "USER_AGENT_DATA": USER_AGENT_DATA,
        "HIGH_ENTROPY_VALUES": HIGH_ENTROPY_VALUES,
        "PRELOAD_PATH": PRELOAD_PATH,
    }
    return "\n".join(f"var {name} = {json.dumps(value)};" for name, value in values.items())


def _indent(source: str, prefix: str) -> str:
    return "\n".join(prefix + line if line else line for line in source.strip("\n").splitlines())


@lru_cache(maxsize=1)
def render_preload_script() -> str:
    """The complete interception script served at ``PRELOAD_PATH``."""
    parts = [
        "(function () {",
        "  'use strict';",
        "  if (window.__PROXY_PRELOADED__) return;",
        "  window.__PROXY_PRELOADED__ = true;",
        "",
        _indent(_constants(), "  "),
        "",
        _indent(HELPERS, "  "),
    ]
    for hook in HOOKS:
        parts.append("")
        parts.append(f"  install({json.dumps(hook.surface)}, function () {{")
        parts.append(_indent(hook.source, "    "))
        parts.append("  });")
    parts.append("})();")
    return "\n".join(parts) + "\n"


def _script_json(value: Any) -> str:
    return json.dumps(value).replace("</", "<\\/")


def render_bootstrap(proxy_base: str, config: Dict[str, Any]) -> str:
    """Inline script publishing the proxy origin and rewrite config to the page."""
    payload = _script_json({"proxyBase": proxy_base, "config": config})
    return f"<script>window.__PROXY_CONFIG__ = {payload};</script>"


def render_loader_markup(proxy_base: str, config: Dict[str, Any]) -> str:
    """Bootstrap script followed by the external preload script tag."""
    return render_bootstrap(proxy_base, config) + f'<script src="{PRELOAD_PATH}"></script>'
