"""Shared type aliases for sqla-rulescope."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Literal, Union

__all__ = [
    "ConditionMap",
    "Effect",
    "JoinSpec",
    "JoinStrategy",
    "OnMissingRules",
    "RelationPath",
]

# A rule either grants or denies its actions.
Effect = Literal["grant", "deny"]

# Valid values for RuleScopeConfig.on_missing_rules.
OnMissingRules = Literal["deny", "raise"]

# Valid values for RuleScopeConfig.join_strategy.
JoinStrategy = Literal["inner", "outer"]

# Field/relation name -> value, or -> nested ConditionMap for a relation.
ConditionMap = Mapping[str, Any]

# Relation names from the subject model down to a related entity.
RelationPath = tuple[str, ...]

# A bare relation name, or {relation: [nested join specs]}.
JoinSpec = Union[str, dict[str, list[Any]]]
