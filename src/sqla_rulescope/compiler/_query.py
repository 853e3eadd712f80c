"""compile_rules() and accessible_by(): rules to filtered SELECT statements."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import ColumnElement, Select, false, select

from sqla_rulescope.compiler._joins import JoinPlan, plan_joins, table_keys
from sqla_rulescope.compiler._normalize import tableize_conditions
from sqla_rulescope.compiler._predicate import (
    FALSE,
    TRUE,
    PredicateNode,
    compile_predicate,
    merge_conditions,
)
from sqla_rulescope.compiler._render import apply_join_plan, render_predicate
from sqla_rulescope.config._config import RuleScopeConfig, get_global_config
from sqla_rulescope.exceptions import NoRulesError, ScopeMergeError
from sqla_rulescope.rules._base import Rule
from sqla_rulescope.rules._conditions import ScopeCondition
from sqla_rulescope.rules._registry import RuleRegistry

__all__ = [
    "CompiledRules",
    "accessible_by",
    "apply_compiled",
    "compile_rules",
    "render_compiled",
]


@dataclass(frozen=True, slots=True)
class CompiledRules:
    """The result of compiling the rules relevant to (model, action).

    Attributes:
        model: The subject model.
        action: The action the rules were selected for.
        rules: The compiled rules, oldest first.
        predicate: The predicate tree.
        join_plan: Relation traversals the predicate needs.
        mergeable: False when an unmergeable rule forced the raw fold,
            which keeps each condition unnormalized.
    """

    model: type
    action: str
    rules: tuple[Rule, ...]
    predicate: PredicateNode
    join_plan: JoinPlan = field(default_factory=JoinPlan)
    mergeable: bool = True

    @property
    def unrestricted(self) -> bool:
        """Whether every record is accessible (no filter needed)."""
        return self.predicate == TRUE

    @property
    def denies_all(self) -> bool:
        return self.predicate == FALSE


def _check_scope_rules(rules: Sequence[Rule], model: type, action: str) -> list[Rule]:
    """Return the scope rules, raising if they cannot be merged with the rest.

    A scope merges only with unconditional rules or with rules carrying
    the very same scope statement.
    """
    scope_rules = [r for r in rules if isinstance(r.conditions, ScopeCondition)]
    if not scope_rules or len(rules) == 1:
        return scope_rules

    first = scope_rules[0]
    statement = first.conditions.statement  # type: ignore[union-attr]
    for rule in rules:
        if rule is first or rule.conditions_empty:
            continue
        if isinstance(rule.conditions, ScopeCondition) and rule.conditions.statement is statement:
            continue
        raise ScopeMergeError(action=action, subject=model.__name__, rules=(first, rule))
    return scope_rules


def _validate_conditions(rule: Rule, model: type) -> None:
    """Raise ``UnknownFieldError`` if a condition map names a missing field."""
    if isinstance(rule.conditions, Mapping):
        tableize_conditions(rule.conditions, model)


def _fold_unmergeable(rules: Sequence[Rule], model: type) -> PredicateNode:
    """Fold each rule's raw condition, oldest first, without normalizing it.

    Expression conditions cannot be split into table-qualified maps, so
    every leaf keeps the shape it was declared with. Precedence is the
    same as ``compile_predicate``: the newest matching rule decides.
    """
    accumulator: PredicateNode = FALSE
    for rule in rules:
        _validate_conditions(rule, model)
        accumulator = merge_conditions(accumulator, rule.conditions, rule.is_grant)
    return accumulator


def compile_rules(
    rules: Iterable[Rule],
    model: type,
    *,
    action: str | None = None,
    config: RuleScopeConfig | None = None,
) -> CompiledRules:
    """Compile *rules* (oldest first, already relevant to *model*) into a predicate.

    The join plan is computed first; its excluded relation paths tell
    the normalizer which nested relation conditions to hoist. When any
    rule is unmergeable, normalization is skipped and the raw conditions
    are folded in declaration order, still using the join plan.

    Args:
        rules: Relevant rules in declaration order.
        model: The subject model.
        action: The action being compiled (for errors and logging).
            Defaults to the configured ``default_action``.
        config: Optional config. Defaults to the global config.

    Returns:
        A ``CompiledRules``.

    Raises:
        NoRulesError: If *rules* is empty and ``on_missing_rules="raise"``.
        ScopeMergeError: If a scope rule conflicts with another rule.
        UnknownFieldError: If a condition key does not exist on its model.

    Example::

        compiled = compile_rules(rules.relevant("read", Post), Post, action="read")
        compiled.predicate   # And(Not(Leaf(...)), Leaf(...))
        compiled.join_plan   # JoinPlan(joins=["comments"], excluded_paths=())
    """
    cfg = config if config is not None else get_global_config()
    action = action if action is not None else cfg.default_action
    rule_list = tuple(rules)

    if not rule_list:
        if cfg.on_missing_rules == "raise":
            raise NoRulesError(subject=model.__name__, action=action)
        compiled = CompiledRules(model=model, action=action, rules=rule_list, predicate=FALSE)
    else:
        scope_rules = _check_scope_rules(rule_list, model, action)
        if scope_rules and cfg.log_compilation:
            from sqla_rulescope._audit import log_scope_rules

            log_scope_rules(model=model, action=action, rules=scope_rules)

        join_plan = plan_joins(rule_list)
        mergeable = not any(rule.unmergeable for rule in rule_list)
        if mergeable:
            predicate = compile_predicate(
                rule_list,
                model,
                excluded_paths=join_plan.excluded_path_set,
                table_keys=table_keys(model, join_plan),
            )
        else:
            predicate = _fold_unmergeable(rule_list, model)
        compiled = CompiledRules(
            model=model,
            action=action,
            rules=rule_list,
            predicate=predicate,
            join_plan=join_plan,
            mergeable=mergeable,
        )

    if cfg.log_compilation:
        from sqla_rulescope._audit import log_compilation

        log_compilation(
            model=model,
            action=action,
            rules=compiled.rules,
            predicate=compiled.predicate,
            join_plan=compiled.join_plan,
            mergeable=compiled.mergeable,
        )

    return compiled


def render_compiled(compiled: CompiledRules) -> ColumnElement[bool]:
    """Render a compilation's predicate into a ``ColumnElement[bool]``."""
    return render_predicate(compiled.predicate, compiled.model, compiled.join_plan)


def apply_compiled(
    stmt: Select[Any],
    compiled: CompiledRules,
    *,
    config: RuleScopeConfig | None = None,
) -> Select[Any]:
    """Apply a compilation's joins and filter to *stmt*.

    An unrestricted compilation leaves *stmt* untouched and one that
    denies everything adds ``WHERE false`` without joins.
    """
    cfg = config if config is not None else get_global_config()
    if compiled.unrestricted:
        return stmt
    if compiled.denies_all:
        return stmt.where(false())

    stmt = apply_join_plan(
        stmt,
        compiled.model,
        compiled.join_plan,
        outer=cfg.join_strategy == "outer",
    )
    if cfg.distinct_joins and not compiled.join_plan.is_empty:
        stmt = stmt.distinct()
    return stmt.where(render_compiled(compiled))


def _primary_entity(stmt: Select[Any]) -> type:
    desc_list: list[dict[str, Any]] = stmt.column_descriptions
    for desc in desc_list:
        entity: type | None = desc.get("entity")
        if entity is not None:
            return entity
    raise ValueError("Cannot determine the subject model of the statement; pass model=...")


def accessible_by(
    stmt: Select[Any] | type,
    rules: RuleRegistry | Iterable[Rule],
    *,
    action: str | None = None,
    model: type | None = None,
    config: RuleScopeConfig | None = None,
) -> Select[Any]:
    """Filter a SELECT down to the records the rules allow for *action*.

    Args:
        stmt: A SQLAlchemy 2.0 Select statement, or a model class
            (shorthand for ``select(model)``).
        rules: A ``RuleRegistry`` or any iterable of rules. Only rules
            matching (action, model) are compiled.
        action: The action being performed. Defaults to the configured
            ``default_action``.
        model: The subject model. Defaults to the statement's first entity.
        config: Optional config. Defaults to the global config.

    Returns:
        A new Select with the join plan and the compiled filter applied.

    Example::

        stmt = accessible_by(select(Post).order_by(Post.id), rules, action="read")
        # SQL: SELECT posts.* FROM posts JOIN comments ON ...
        #      WHERE NOT (comments.hidden = true) AND posts.author_id = 1
    """
    cfg = config if config is not None else get_global_config()
    action = action if action is not None else cfg.default_action

    if isinstance(stmt, type):
        model = model if model is not None else stmt
        stmt = select(stmt)
    if model is None:
        model = _primary_entity(stmt)

    if isinstance(rules, RuleRegistry):
        relevant = rules.relevant(action, model)
    else:
        relevant = [rule for rule in rules if rule.matches(action, model)]

    compiled = compile_rules(relevant, model, action=action, config=cfg)
    return apply_compiled(stmt, compiled, config=cfg)
