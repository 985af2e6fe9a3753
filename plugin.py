"""
plugin.py -- Entry point the host's plugin loader calls.

This is the ONLY module a host needs to import. The loader passes the plugin's
config block and a "stuff" mapping carrying host services; only the logger is
used here.

Usage:
    from plugin import create_plugin
    engine = create_plugin(config_block, {"logger": host_logger})
    groups = await engine.authenticate("alice", "pw1")
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from auth.engine import AuthEngine
from core.config import EngineConfig


def create_plugin(config: EngineConfig | Mapping[str, Any], stuff: Mapping[str, Any] | None = None) -> AuthEngine:
    """Build an AuthEngine from the host's config block.

    Never raises for missing options; gaps are logged by the engine's startup
    checks. A config block of the wrong shape (e.g. a non-string template) is a
    host misconfiguration and raises pydantic.ValidationError.
    """
    logger = (stuff or {}).get("logger")
    return AuthEngine(config, logger=logger)
