"""
Process-wide rewrite configuration.

The config is an immutable pydantic snapshot. Updates build a new snapshot
and swap it in; readers always see one complete version. There is a single
event loop and no await between read and swap, so no lock is needed.
"""

import logging
from typing import Optional

from pydantic import BaseModel, ConfigDict, StrictBool

from ua_proxy.vars import PROCESS_LINKS

logger = logging.getLogger("uvicorn.error")


class RewriteConfig(BaseModel):
    """Settings published to every proxied page through the bootstrap script."""

    model_config = ConfigDict(frozen=True)

    processLinks: bool = True


class ConfigUpdate(BaseModel):
    """Body accepted by the config endpoint; booleans only, no coercion."""

    processLinks: StrictBool


class RewriteConfigStore:
    def __init__(self, initial: Optional[RewriteConfig] = None):
        self._config = initial or RewriteConfig(processLinks=PROCESS_LINKS)

    def get(self) -> RewriteConfig:
        return self._config

    def update(self, update: ConfigUpdate) -> RewriteConfig:
        self._config = self._config.model_copy(update=update.model_dump())
        logger.info(f"[Config] Rewrite config updated: {self._config.model_dump()}")
        return self._config


_store = RewriteConfigStore()


def config_store() -> RewriteConfigStore:
    return _store


def get_rewrite_config() -> RewriteConfig:
    """FastAPI dependency returning the current config snapshot."""
    return _store.get()
