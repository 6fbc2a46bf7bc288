from .hooks import HOOKS, Hook
from .script import render_bootstrap, render_loader_markup, render_preload_script

__all__ = [
    "HOOKS",
    "Hook",
    "render_bootstrap",
    "render_loader_markup",
    "render_preload_script",
]
