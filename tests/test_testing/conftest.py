"""Import fixtures from sqla_rulescope.testing for test discovery."""

from sqla_rulescope.testing._fixtures import isolated_rulescope_config, rule_registry

__all__ = ["isolated_rulescope_config", "rule_registry"]
