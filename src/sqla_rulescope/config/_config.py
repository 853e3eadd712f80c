"""Layered configuration for sqla-rulescope."""

from __future__ import annotations

from dataclasses import dataclass

from sqla_rulescope._types import JoinStrategy, OnMissingRules

__all__ = [
    "RuleScopeConfig",
    "configure",
    "get_global_config",
    "_reset_global_config",
    "_set_global_config",
]

_VALID_MISSING_RULES: set[str] = {"deny", "raise"}
_VALID_JOIN_STRATEGIES: set[str] = {"inner", "outer"}


@dataclass(frozen=True, slots=True)
class RuleScopeConfig:
    """Layered configuration with merge semantics (global -> call).

    Attributes:
        on_missing_rules: Behavior when no rule applies.
            ``"deny"`` compiles to FALSE (zero rows).
            ``"raise"`` raises ``NoRulesError``.
        default_action: Action used when a call does not name one.
        log_compilation: Log compilation decisions via the
            ``sqla_rulescope`` logger.
        join_strategy: ``"inner"`` applies joins with ``Select.join``,
            ``"outer"`` with ``Select.outerjoin``.
        distinct_joins: Add ``DISTINCT`` when the join plan is non-empty,
            collapsing duplicates from to-many joins.

    Example::

        config = RuleScopeConfig(on_missing_rules="raise")
        merged = config.merge(join_strategy="outer")
    """

    on_missing_rules: OnMissingRules = "deny"
    default_action: str = "read"
    log_compilation: bool = False
    join_strategy: JoinStrategy = "inner"
    distinct_joins: bool = False

    def __post_init__(self) -> None:
        if self.on_missing_rules not in _VALID_MISSING_RULES:
            raise ValueError(
                f"on_missing_rules must be one of {_VALID_MISSING_RULES!r}, "
                f"got {self.on_missing_rules!r}"
            )
        if self.join_strategy not in _VALID_JOIN_STRATEGIES:
            raise ValueError(
                f"join_strategy must be one of {_VALID_JOIN_STRATEGIES!r}, "
                f"got {self.join_strategy!r}"
            )
        if not self.default_action:
            raise ValueError("default_action must be a non-empty string")

    def merge(
        self,
        *,
        on_missing_rules: OnMissingRules | None = None,
        default_action: str | None = None,
        log_compilation: bool | None = None,
        join_strategy: JoinStrategy | None = None,
        distinct_joins: bool | None = None,
    ) -> RuleScopeConfig:
        """Return a new config with non-None overrides applied.

        Args:
            on_missing_rules: Override for on_missing_rules (ignored if None).
            default_action: Override for default_action (ignored if None).
            log_compilation: Override for log_compilation (ignored if None).
            join_strategy: Override for join_strategy (ignored if None).
            distinct_joins: Override for distinct_joins (ignored if None).

        Returns:
            A new ``RuleScopeConfig`` with overrides merged.

        Example::

            base = RuleScopeConfig()
            call_cfg = base.merge(on_missing_rules="raise")
        """
        return RuleScopeConfig(
            on_missing_rules=(
                on_missing_rules if on_missing_rules is not None else self.on_missing_rules
            ),
            default_action=(default_action if default_action is not None else self.default_action),
            log_compilation=(
                log_compilation if log_compilation is not None else self.log_compilation
            ),
            join_strategy=(join_strategy if join_strategy is not None else self.join_strategy),
            distinct_joins=(distinct_joins if distinct_joins is not None else self.distinct_joins),
        )


# ---------------------------------------------------------------------------
# Global configuration singleton
# ---------------------------------------------------------------------------

_global_config = RuleScopeConfig()


def get_global_config() -> RuleScopeConfig:
    """Return the current global configuration.

    Example::

        config = get_global_config()
        print(config.on_missing_rules)  # "deny"
    """
    return _global_config


def configure(
    *,
    on_missing_rules: OnMissingRules | None = None,
    default_action: str | None = None,
    log_compilation: bool | None = None,
    join_strategy: JoinStrategy | None = None,
    distinct_joins: bool | None = None,
) -> RuleScopeConfig:
    """Update the global configuration by merging overrides.

    Only non-None values are applied. Returns the new global config.

    Args:
        on_missing_rules: Set to ``"deny"`` or ``"raise"``.
        default_action: Set the default action string.
        log_compilation: Enable/disable logging of compilation decisions.
        join_strategy: Set to ``"inner"`` or ``"outer"``.
        distinct_joins: Enable/disable ``DISTINCT`` on joined queries.

    Returns:
        The updated global ``RuleScopeConfig``.

    Example::

        configure(on_missing_rules="raise")
        # Now an empty rule set raises NoRulesError instead of denying
    """
    global _global_config
    _global_config = _global_config.merge(
        on_missing_rules=on_missing_rules,
        default_action=default_action,
        log_compilation=log_compilation,
        join_strategy=join_strategy,
        distinct_joins=distinct_joins,
    )
    return _global_config


def _set_global_config(cfg: RuleScopeConfig) -> None:
    """Replace global config with an exact snapshot. For testing only."""
    global _global_config
    _global_config = cfg


def _reset_global_config() -> None:
    """Reset global config to defaults. For testing only."""
    global _global_config
    _global_config = RuleScopeConfig()
