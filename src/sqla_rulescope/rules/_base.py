"""Rule dataclass: one declared grant or denial with its scope conditions."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from sqla_rulescope._types import ConditionMap, Effect
from sqla_rulescope.exceptions import RuleDefinitionError
from sqla_rulescope.rules._conditions import ExpressionCondition, OpaqueCondition, SQLFragment

__all__ = ["MANAGE", "Rule", "association_skeleton"]

# Action name that matches every action.
MANAGE = "manage"

_VALID_EFFECTS: set[str] = {"grant", "deny"}


def association_skeleton(conditions: ConditionMap) -> dict[str, Any]:
    """Strip field leaves from a condition map, keeping only relation entries.

    Example::

        association_skeleton({"author_id": 1, "comments": {"author": {"id": 2}}})
        # {"comments": {"author": {}}}
    """
    return {
        name: association_skeleton(value)
        for name, value in conditions.items()
        if isinstance(value, Mapping)
    }


@dataclass(frozen=True, slots=True)
class Rule:
    """A single declared permission or denial.

    Attributes:
        effect: ``"grant"`` or ``"deny"``.
        actions: Action names covered by the rule. ``"manage"`` covers
            every action.
        subject: The SQLAlchemy model class the rule applies to.
        conditions: ``None`` or a mapping (empty matches everything), or
            an ``OpaqueCondition``.
        ordinal: Declaration position, stamped by ``RuleRegistry.add``.

    Example::

        Rule("grant", ("read",), Post, {"author_id": 1})
        Rule("deny", ("read",), Post, {"comments": {"hidden": True}})
    """

    effect: Effect
    actions: tuple[str, ...]
    subject: type
    conditions: ConditionMap | OpaqueCondition | None = None
    ordinal: int = 0

    def __post_init__(self) -> None:
        if self.effect not in _VALID_EFFECTS:
            raise RuleDefinitionError(
                f"effect must be one of {_VALID_EFFECTS!r}, got {self.effect!r}"
            )
        if isinstance(self.actions, str):
            object.__setattr__(self, "actions", (self.actions,))
        else:
            object.__setattr__(self, "actions", tuple(self.actions))
        if not self.actions:
            raise RuleDefinitionError("a rule must name at least one action")
        if not isinstance(self.subject, type):
            raise RuleDefinitionError(f"subject must be a model class, got {self.subject!r}")
        if self.conditions is not None and not isinstance(
            self.conditions, (Mapping, OpaqueCondition)
        ):
            raise RuleDefinitionError(
                f"conditions must be a mapping or an opaque condition, "
                f"got {type(self.conditions).__name__}"
            )

    @property
    def is_grant(self) -> bool:
        return self.effect == "grant"

    @property
    def custom_predicate(self) -> SQLFragment | None:
        """The raw SQL fragment standing in for a condition map, if any."""
        if isinstance(self.conditions, SQLFragment):
            return self.conditions
        return None

    @property
    def unmergeable(self) -> bool:
        return isinstance(self.conditions, ExpressionCondition)

    @property
    def conditions_empty(self) -> bool:
        if self.conditions is None:
            return True
        if isinstance(self.conditions, SQLFragment):
            return self.conditions.blank
        return isinstance(self.conditions, Mapping) and not self.conditions

    @property
    def associations(self) -> dict[str, Any]:
        """Relation-shaped skeleton of the conditions (empty for opaque ones)."""
        if isinstance(self.conditions, Mapping):
            return association_skeleton(self.conditions)
        return {}

    def matches(self, action: str, subject: type) -> bool:
        """Whether the rule covers *action* on *subject* (or a subclass of it)."""
        if MANAGE not in self.actions and action not in self.actions:
            return False
        return isinstance(subject, type) and issubclass(subject, self.subject)

    def __repr__(self) -> str:
        actions = ",".join(self.actions)
        return (
            f"Rule(#{self.ordinal} {self.effect} {actions} {self.subject.__name__} "
            f"conditions={self.conditions!r})"
        )
