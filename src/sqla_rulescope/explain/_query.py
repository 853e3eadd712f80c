"""explain_rules() — explain how rules would compile for a model and action."""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import ColumnElement, select

from sqla_rulescope.compiler._query import apply_compiled, compile_rules, render_compiled
from sqla_rulescope.config._config import RuleScopeConfig, get_global_config
from sqla_rulescope.explain._models import RuleExplanation, RulesExplanation
from sqla_rulescope.rules._base import Rule
from sqla_rulescope.rules._registry import RuleRegistry

__all__ = ["explain_rules"]


def _compile_sql(expr: ColumnElement[bool]) -> str:
    """Compile a SQLAlchemy expression to SQL with literal binds."""
    return str(expr.compile(compile_kwargs={"literal_binds": True}))


def explain_rules(
    rules: RuleRegistry | Iterable[Rule],
    model: type,
    *,
    action: str | None = None,
    config: RuleScopeConfig | None = None,
) -> RulesExplanation:
    """Explain how the rules for (model, action) compile, without executing.

    Args:
        rules: A ``RuleRegistry`` or an iterable of rules.
        model: The subject model.
        action: The action string. Defaults to the configured ``default_action``.
        config: Optional config. Defaults to the global config.

    Returns:
        A ``RulesExplanation`` with per-rule entries, the predicate tree,
        the join plan and the compiled SQL.

    Example::

        print(explain_rules(rules, Post, action="read"))
    """
    cfg = config if config is not None else get_global_config()
    action = action if action is not None else cfg.default_action

    if isinstance(rules, RuleRegistry):
        relevant = rules.relevant(action, model)
    else:
        relevant = [rule for rule in rules if rule.matches(action, model)]

    compiled = compile_rules(relevant, model, action=action, config=cfg)

    rule_explanations = [
        RuleExplanation(
            ordinal=rule.ordinal,
            effect=rule.effect,
            actions=list(rule.actions),
            conditions=repr(rule.conditions),
            mergeable=not rule.unmergeable,
            unconditional=rule.conditions_empty,
        )
        for rule in compiled.rules
    ]

    authorized_stmt = apply_compiled(select(model), compiled, config=cfg)

    return RulesExplanation(
        model_name=model.__name__,
        action=action,
        rules=rule_explanations,
        predicate=repr(compiled.predicate),
        filter_sql=_compile_sql(render_compiled(compiled)),
        joins=list(compiled.join_plan.joins),
        excluded=compiled.join_plan.excluded,
        mergeable=compiled.mergeable,
        deny_by_default=not compiled.rules,
        authorized_sql=str(authorized_stmt.compile(compile_kwargs={"literal_binds": True})),
    )
