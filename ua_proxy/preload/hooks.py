"""
The interception table.

Every browser surface the preload script patches is one ``Hook`` row: the
surface name, the JavaScript that installs the patch, and the Python rule the
patch applies (when the rule is more than "canonicalize the URL argument").
The script generator installs each row in isolation so one failing surface
never prevents the others from being patched.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from . import rules


@dataclass(frozen=True)
class Hook:
    surface: str
    source: str
    rule: Optional[Callable] = None


FETCH = """
var nativeFetch = window.fetch;
if (!nativeFetch) return;
window.fetch = function (input, init) {
  if (typeof input === 'string' || input instanceof URL) {
    input = proxyUrl(String(input));
  } else if (input && input.url) {
    var rewritten = proxyUrl(input.url);
    if (rewritten !== input.url) input = new Request(rewritten, input);
  }
  return nativeFetch.call(window, input, init);
};
"""

XHR_OPEN = """
var nativeOpen = XMLHttpRequest.prototype.open;
XMLHttpRequest.prototype.open = function (method, url) {
  var args = Array.prototype.slice.call(arguments);
  args[1] = proxyUrl(url);
  return nativeOpen.apply(this, args);
};
"""

ELEMENT_SETTERS = """
ELEMENT_PROPERTIES.forEach(function (entry) {
  var ctor = window[entry[0]];
  if (!ctor || !ctor.prototype) return;
  entry[1].forEach(function (prop) {
    try {
      var descriptor = Object.getOwnPropertyDescriptor(ctor.prototype, prop);
      if (!descriptor || !descriptor.set) return;
      Object.defineProperty(ctor.prototype, prop, {
        configurable: true,
        enumerable: descriptor.enumerable,
        get: descriptor.get,
        set: function (value) {
          var rewritten = prop === 'srcset' ? rewriteSrcset(value) : proxyUrl(value);
          return descriptor.set.call(this, rewritten);
        }
      });
    } catch (e) {}
  });
});
"""

SET_ATTRIBUTE = """
var nativeSetAttribute = Element.prototype.setAttribute;
Element.prototype.setAttribute = function (name, value) {
  return nativeSetAttribute.call(this, name, rewriteAttribute(name, value));
};
"""

WINDOW_OPEN = """
var nativeWindowOpen = window.open;
window.open = function (url) {
  var args = Array.prototype.slice.call(arguments);
  if (args.length) args[0] = proxyUrl(url);
  var opened = nativeWindowOpen.apply(window, args);
  if (opened) {
    try {
      installLoader(opened.document);
    } catch (e) {}
  }
  return opened;
};
"""

WORKER = """
var NativeWorker = window.Worker;
if (!NativeWorker) return;
var ProxiedWorker = function (scriptURL, options) {
  return new NativeWorker(proxyUrl(scriptURL), options);
};
ProxiedWorker.prototype = NativeWorker.prototype;
window.Worker = ProxiedWorker;
"""

SEND_BEACON = """
var nativeSendBeacon = navigator.sendBeacon;
if (!nativeSendBeacon) return;
navigator.sendBeacon = function (url, data) {
  return nativeSendBeacon.call(navigator, proxyUrl(url), data);
};
"""

SERVICE_WORKER = """
var container = navigator.serviceWorker;
if (!container || !container.register) return;
var nativeRegister = container.register;
container.register = function (scriptURL, options) {
  return nativeRegister.call(container, proxyUrl(scriptURL), options);
};
"""

PROTOCOL_HANDLER = """
var nativeRegisterProtocolHandler = navigator.registerProtocolHandler;
if (!nativeRegisterProtocolHandler) return;
navigator.registerProtocolHandler = function (scheme, url) {
  var args = Array.prototype.slice.call(arguments);
  args[1] = proxyUrl(url);
  return nativeRegisterProtocolHandler.apply(navigator, args);
};
"""

EVENT_SOURCE = """
var NativeEventSource = window.EventSource;
if (!NativeEventSource) return;
var ProxiedEventSource = function (url, config) {
  return new NativeEventSource(proxyUrl(url), config);
};
ProxiedEventSource.prototype = NativeEventSource.prototype;
['CONNECTING', 'OPEN', 'CLOSED'].forEach(function (name) {
  ProxiedEventSource[name] = NativeEventSource[name];
});
window.EventSource = ProxiedEventSource;
"""

LOCATION_METHODS = """
['replace', 'assign'].forEach(function (method) {
  var nativeMethod = Location.prototype[method];
  if (typeof nativeMethod !== 'function') return;
  Location.prototype[method] = function (url) {
    return nativeMethod.call(this, proxyUrl(url));
  };
});
"""

LOCATION_HREF = """
var descriptor = Object.getOwnPropertyDescriptor(Location.prototype, 'href');
if (!descriptor || !descriptor.set) return;
Object.defineProperty(Location.prototype, 'href', {
  configurable: true,
  enumerable: descriptor.enumerable,
  get: descriptor.get,
  set: function (value) {
    return descriptor.set.call(this, proxyUrl(value));
  }
});
"""

LOCATION_COMPONENT_SETTERS = """
LOCATION_COMPONENTS.forEach(function (component) {
  try {
    var descriptor = Object.getOwnPropertyDescriptor(Location.prototype, component);
    if (!descriptor || !descriptor.set) return;
    Object.defineProperty(Location.prototype, component, {
      configurable: true,
      enumerable: descriptor.enumerable,
      get: descriptor.get,
      set: function (value) {
        var target = new URL(currentTarget());
        target[component] = value;
        window.location.href = proxyUrl(target.href);
      }
    });
  } catch (e) {}
});
"""

WINDOW_NAVIGATE = """
var nativeNavigate = window.navigate;
if (typeof nativeNavigate !== 'function') return;
window.navigate = function (url) {
  return nativeNavigate.call(window, proxyUrl(url));
};
"""

HISTORY = """
['pushState', 'replaceState'].forEach(function (method) {
  var nativeMethod = History.prototype[method];
  if (typeof nativeMethod !== 'function') return;
  History.prototype[method] = function (state, title, url) {
    var args = Array.prototype.slice.call(arguments);
    if (args.length > 2 && args[2]) args[2] = proxyUrl(args[2]);
    return nativeMethod.apply(this, args);
  };
});
"""

CSS_SET_PROPERTY = """
var nativeSetProperty = CSSStyleDeclaration.prototype.setProperty;
CSSStyleDeclaration.prototype.setProperty = function (prop, value, priority) {
  var original = arguments;
  try {
    if (CSS_URL_PROPERTIES.indexOf(prop) !== -1 && typeof value === 'string' &&
        value.indexOf('url(') !== -1) {
      value = rewriteCssValue(value);
    }
    return nativeSetProperty.call(this, prop, value, priority);
  } catch (e) {
    return nativeSetProperty.apply(this, original);
  }
};
"""

WEBSOCKET = """
var NativeWebSocket = window.WebSocket;
if (!NativeWebSocket) return;
var ProxiedWebSocket = function (url, protocols) {
  var target = url;
  if (typeof url === 'string' || url instanceof URL) {
    target = coerceSocketUrl(proxyUrl(String(url)));
  }
  try {
    return protocols !== undefined
      ? new NativeWebSocket(target, protocols)
      : new NativeWebSocket(target);
  } catch (e) {
    return protocols !== undefined
      ? new NativeWebSocket(url, protocols)
      : new NativeWebSocket(url);
  }
};
ProxiedWebSocket.prototype = NativeWebSocket.prototype;
['CONNECTING', 'OPEN', 'CLOSING', 'CLOSED'].forEach(function (name) {
  ProxiedWebSocket[name] = NativeWebSocket[name];
});
window.WebSocket = ProxiedWebSocket;
"""

POST_MESSAGE = """
var nativePostMessage = window.postMessage;
window.postMessage = function (message, targetOrigin, transfer) {
  try {
    return nativePostMessage.call(window, message, relaxTargetOrigin(targetOrigin), transfer);
  } catch (e) {
    return nativePostMessage.call(window, message, '*', transfer);
  }
};
"""

WEBDRIVER = """
Object.defineProperty(navigator, 'webdriver', {
  configurable: true,
  get: function () { return undefined; }
});
"""

CLIENT_HINTS = """
if (!navigator.userAgentData) return;
var lowEntropy = {
  brands: USER_AGENT_DATA.brands,
  mobile: USER_AGENT_DATA.mobile,
  platform: USER_AGENT_DATA.platform
};
Object.defineProperty(navigator, 'userAgentData', {
  configurable: true,
  get: function () {
    return {
      brands: lowEntropy.brands,
      mobile: lowEntropy.mobile,
      platform: lowEntropy.platform,
      getHighEntropyValues: function () {
        return Promise.resolve(Object.assign({}, lowEntropy, HIGH_ENTROPY_VALUES));
      },
      toJSON: function () { return lowEntropy; }
    };
  }
});
"""

META_REFRESH_OBSERVER = """
if (!window.MutationObserver || !document.documentElement) return;
var rewriteRefresh = function (node) {
  if (!node || node.nodeType !== 1) return;
  var metas = node.tagName === 'META'
    ? [node]
    : (node.querySelectorAll ? node.querySelectorAll('meta[http-equiv]') : []);
  Array.prototype.forEach.call(metas, function (meta) {
    if ((meta.getAttribute('http-equiv') || '').toLowerCase() !== 'refresh') return;
    var content = meta.getAttribute('content');
    if (content) meta.setAttribute('content', rewriteMetaRefresh(content));
  });
};
new MutationObserver(function (mutations) {
  mutations.forEach(function (mutation) {
    Array.prototype.forEach.call(mutation.addedNodes, rewriteRefresh);
  });
}).observe(document.documentElement, { childList: true, subtree: true });
"""

LINK_CLICKS = """
document.addEventListener('click', function (event) {
  if (!PROCESS_LINKS) return;
  var anchor = event.target;
  while (anchor && anchor.tagName !== 'A') anchor = anchor.parentElement;
  if (!anchor) return;
  var href = anchor.getAttribute('href');
  if (href && !under(href, PROXY_BASE) && !PASSTHROUGH.test(href)) {
    anchor.setAttribute('href', proxyUrl(href));
  }
}, true);
"""


HOOKS: Tuple[Hook, ...] = (
    Hook("fetch", FETCH),
    Hook("XMLHttpRequest.open", XHR_OPEN),
    Hook("element URL properties", ELEMENT_SETTERS, rules.rewrite_srcset),
    Hook("Element.setAttribute", SET_ATTRIBUTE, rules.rewrite_attribute),
    Hook("window.open", WINDOW_OPEN),
    Hook("Worker", WORKER),
    Hook("navigator.sendBeacon", SEND_BEACON),
    Hook("navigator.serviceWorker.register", SERVICE_WORKER),
    Hook("navigator.registerProtocolHandler", PROTOCOL_HANDLER),
    Hook("EventSource", EVENT_SOURCE),
    Hook("Location.replace/assign", LOCATION_METHODS),
    Hook("Location.href", LOCATION_HREF),
    Hook("Location components", LOCATION_COMPONENT_SETTERS, rules.relocate),
    Hook("window.navigate", WINDOW_NAVIGATE),
    Hook("History.pushState/replaceState", HISTORY),
    Hook("CSSStyleDeclaration.setProperty", CSS_SET_PROPERTY, rules.rewrite_css_value),
    Hook("WebSocket", WEBSOCKET, rules.coerce_socket_url),
    Hook("window.postMessage", POST_MESSAGE, rules.relax_target_origin),
    Hook("navigator.webdriver", WEBDRIVER),
    Hook("navigator.userAgentData", CLIENT_HINTS),
    Hook("meta refresh observer", META_REFRESH_OBSERVER, rules.rewrite_meta_refresh),
    Hook("link clicks", LINK_CLICKS),
)
