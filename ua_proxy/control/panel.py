import html
import json
from string import Template

from ua_proxy.vars import CONFIG_API_PATH, DESKTOP_UA

from .config_store import RewriteConfig

PANEL_TEMPLATE = Template(
    """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>UA Proxy</title>
<style>
  body { font-family: system-ui, sans-serif; max-width: 720px; margin: 40px auto; padding: 0 16px; color: #222; }
  h1 { font-size: 1.4em; }
  .status { color: #1a7f37; font-weight: 600; }
  code { background: #f3f3f3; padding: 2px 4px; border-radius: 3px; word-break: break-all; }
  form { display: flex; gap: 8px; margin: 16px 0; }
  input[type=url] { flex: 1; padding: 6px 8px; }
  #config-message { margin-left: 8px; color: #666; }
</style>
</head>
<body>
<h1>UA Proxy</h1>
<p>Status: <span class="status">running</span> at <code>$proxy_base</code></p>
<p>Desktop user agent: <code>$user_agent</code></p>

<form id="open-form">
  <input type="url" id="target" placeholder="https://www.bilibili.com/" required>
  <button type="submit">Open</button>
</form>

<label>
  <input type="checkbox" id="process-links" $checked>
  Rewrite links on click
</label>
<span id="config-message"></span>

<script>
  var CONFIG_API = $config_api;
  document.getElementById('open-form').addEventListener('submit', function (event) {
    event.preventDefault();
    var target = document.getElementById('target').value.trim();
    if (target) window.location.href = '/' + target;
  });
  document.getElementById('process-links').addEventListener('change', function (event) {
    var message = document.getElementById('config-message');
    fetch(CONFIG_API, {
      method: 'POST',
      headers: { 'Content-Type': 'application/json' },
      body: JSON.stringify({ processLinks: event.target.checked })
    }).then(function (response) {
      return response.json();
    }).then(function (result) {
      message.textContent = result.success ? 'saved' : result.message;
    }).catch(function (error) {
      message.textContent = String(error);
    });
  });
</script>
</body>
</html>
"""
)


def render_control_panel(proxy_base: str, config: RewriteConfig) -> str:
    """Landing page served whenever a request names no target URL."""
    return PANEL_TEMPLATE.substitute(
        proxy_base=html.escape(proxy_base),
        user_agent=html.escape(DESKTOP_UA),
        checked="checked" if config.processLinks else "",
        config_api=json.dumps(CONFIG_API_PATH),
    )
