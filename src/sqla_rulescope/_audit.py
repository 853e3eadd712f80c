"""Audit logging for rule compilation decisions."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sqla_rulescope.compiler._joins import JoinPlan
    from sqla_rulescope.compiler._predicate import PredicateNode
    from sqla_rulescope.rules._base import Rule

__all__ = ["log_compilation", "log_scope_rules"]

logger = logging.getLogger("sqla_rulescope")


def log_compilation(
    *,
    model: type,
    action: str,
    rules: Sequence[Rule],
    predicate: PredicateNode,
    join_plan: JoinPlan,
    mergeable: bool,
) -> None:
    """Log a rule compilation decision.

    Logging levels:
    - INFO: Summary (model, action, rule count, compilation path)
    - DEBUG: Detailed (rule ordinals, predicate tree, joins)
    - WARNING: No rules apply (deny-by-default triggered)

    Example::

        log_compilation(
            model=Post,
            action="read",
            rules=relevant_rules,
            predicate=compiled.predicate,
            join_plan=compiled.join_plan,
            mergeable=True,
        )
    """
    model_name = model.__name__
    rule_count = len(rules)

    if rule_count == 0:
        logger.warning(
            "No rules apply to (%s, %r): deny-by-default applied",
            model_name,
            action,
        )
        return

    logger.info(
        "Rule compilation: %s.%s: %d rule(s) compiled via %s path",
        model_name,
        action,
        rule_count,
        "fold" if mergeable else "raw fold",
    )

    if logger.isEnabledFor(logging.DEBUG):
        ordinals = [f"#{r.ordinal}:{r.effect}" for r in rules]
        logger.debug(
            "Rules for %s.%s: %s; predicate: %r; joins: %r; excluded: %r",
            model_name,
            action,
            ordinals,
            predicate,
            join_plan.joins,
            join_plan.excluded,
        )


def log_scope_rules(*, model: type, action: str, rules: Sequence[Rule]) -> None:
    """Log scope rules folded into a compilation under ``sqla_rulescope.scope``."""
    scope_logger = logging.getLogger("sqla_rulescope.scope")
    scope_logger.info(
        "SCOPE %s.%s: folding scope rule(s) %s",
        model.__name__,
        action,
        [r.ordinal for r in rules],
    )
