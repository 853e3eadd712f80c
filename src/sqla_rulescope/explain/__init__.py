"""Explain/dry-run mode — structured insight into rule compilation."""

from sqla_rulescope.explain._models import RuleExplanation, RulesExplanation
from sqla_rulescope.explain._query import explain_rules

__all__ = [
    "RuleExplanation",
    "RulesExplanation",
    "explain_rules",
]
