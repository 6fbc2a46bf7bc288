from .config_store import (
    ConfigUpdate,
    RewriteConfig,
    RewriteConfigStore,
    config_store,
    get_rewrite_config,
)
from .panel import render_control_panel
from .routes import router

__all__ = [
    "ConfigUpdate",
    "RewriteConfig",
    "RewriteConfigStore",
    "config_store",
    "get_rewrite_config",
    "render_control_panel",
    "router",
]
