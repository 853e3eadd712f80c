"""Configuration module for sqla-rulescope."""

from __future__ import annotations

from sqla_rulescope.config._config import RuleScopeConfig, configure, get_global_config

__all__ = ["RuleScopeConfig", "configure", "get_global_config"]
