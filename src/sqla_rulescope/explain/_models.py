"""Data models for explain/dry-run output."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

__all__ = ["RuleExplanation", "RulesExplanation"]


@dataclass(frozen=True, slots=True)
class RuleExplanation:
    """How a single rule takes part in a compilation.

    Attributes:
        ordinal: Declaration position.
        effect: ``"grant"`` or ``"deny"``.
        actions: Actions covered by the rule.
        conditions: String representation of the rule's conditions.
        mergeable: False if the rule forces the raw fold.
        unconditional: True if the rule has no conditions.
    """

    ordinal: int
    effect: str
    actions: list[str]
    conditions: str
    mergeable: bool
    unconditional: bool

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable dictionary."""
        return {
            "ordinal": self.ordinal,
            "effect": self.effect,
            "actions": list(self.actions),
            "conditions": self.conditions,
            "mergeable": self.mergeable,
            "unconditional": self.unconditional,
        }


@dataclass(frozen=True, slots=True)
class RulesExplanation:
    """Full explanation of how rules compile for one (model, action).

    Attributes:
        model_name: Short class name (e.g. ``"Post"``).
        action: The action being explained.
        rules: Per-rule explanations, oldest first.
        predicate: String representation of the predicate tree.
        filter_sql: The rendered filter with literal binds.
        joins: The join plan's join specs.
        excluded: Relations whose nested relations were flattened.
        mergeable: False when the raw fold was used.
        deny_by_default: True if no rules applied.
        authorized_sql: The complete filtered SELECT.
    """

    model_name: str
    action: str
    rules: list[RuleExplanation]
    predicate: str
    filter_sql: str
    joins: list[Any]
    excluded: list[str]
    mergeable: bool
    deny_by_default: bool
    authorized_sql: str

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable dictionary."""
        return {
            "model_name": self.model_name,
            "action": self.action,
            "rules": [r.to_dict() for r in self.rules],
            "predicate": self.predicate,
            "filter_sql": self.filter_sql,
            "joins": list(self.joins),
            "excluded": list(self.excluded),
            "mergeable": self.mergeable,
            "deny_by_default": self.deny_by_default,
            "authorized_sql": self.authorized_sql,
        }

    def __str__(self) -> str:
        """Return a human-readable multi-line explanation."""
        lines: list[str] = []
        lines.append(f"Rule Compilation for {self.model_name} action={self.action!r}")
        if self.deny_by_default:
            lines.append("  DENY BY DEFAULT (no rules apply)")
        else:
            lines.append(f"  Rules ({len(self.rules)}):")
            for r in self.rules:
                flags = "" if r.mergeable else " [unmergeable]"
                lines.append(f"    #{r.ordinal} {r.effect}{flags}: {r.conditions}")
            lines.append(f"  Path: {'fold' if self.mergeable else 'raw fold'}")
            lines.append(f"  Predicate: {self.predicate}")
            lines.append(f"  Joins: {self.joins}")
            if self.excluded:
                lines.append(f"  Flattened relations: {', '.join(self.excluded)}")
        lines.append(f"  Filter SQL: {self.filter_sql}")
        lines.append(f"  Authorized SQL: {self.authorized_sql}")
        return "\n".join(lines)
