"""Rules: declared grants/denials, opaque conditions, and the rule registry."""

from sqla_rulescope.rules._base import MANAGE, Rule, association_skeleton
from sqla_rulescope.rules._conditions import (
    ExpressionCondition,
    OpaqueCondition,
    ScopeCondition,
    SQLFragment,
)
from sqla_rulescope.rules._registry import RuleRegistry

__all__ = [
    "MANAGE",
    "ExpressionCondition",
    "OpaqueCondition",
    "Rule",
    "RuleRegistry",
    "SQLFragment",
    "ScopeCondition",
    "association_skeleton",
]
