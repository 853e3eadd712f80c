"""Predicate trees and the rule fold that builds them.

A predicate tree is a small immutable AST (TRUE, FALSE, Leaf, Not, And,
Or). Leaves hold either a qualified condition map or an opaque
condition; rendering to SQL happens in ``compiler._render``.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Union

from sqla_rulescope._types import RelationPath
from sqla_rulescope.compiler._normalize import tableize_conditions
from sqla_rulescope.rules._base import Rule
from sqla_rulescope.rules._conditions import SQLFragment

__all__ = [
    "FALSE",
    "TRUE",
    "And",
    "FalseNode",
    "Leaf",
    "Not",
    "Or",
    "PredicateNode",
    "TrueNode",
    "compile_predicate",
    "effective_condition",
    "merge_conditions",
]


@dataclass(frozen=True, slots=True)
class TrueNode:
    def __repr__(self) -> str:
        return "TRUE"


@dataclass(frozen=True, slots=True)
class FalseNode:
    def __repr__(self) -> str:
        return "FALSE"


@dataclass(frozen=True, slots=True)
class Leaf:
    """A single rule's condition: a qualified map or an opaque condition."""

    conditions: Any


@dataclass(frozen=True, slots=True)
class Not:
    operand: PredicateNode


@dataclass(frozen=True, slots=True)
class And:
    left: PredicateNode
    right: PredicateNode


@dataclass(frozen=True, slots=True)
class Or:
    left: PredicateNode
    right: PredicateNode


PredicateNode = Union[TrueNode, FalseNode, Leaf, Not, And, Or]

TRUE = TrueNode()
FALSE = FalseNode()


def _is_blank(condition: Any) -> bool:
    if condition is None:
        return True
    if isinstance(condition, SQLFragment):
        return condition.blank
    return isinstance(condition, Mapping) and not condition


def merge_conditions(
    accumulator: PredicateNode,
    condition: Any,
    grant: bool,
) -> PredicateNode:
    """Combine one rule's condition with the predicate built so far.

    An empty condition is unconditional: a grant yields TRUE and a denial
    yields FALSE, discarding everything declared before it.

    Args:
        accumulator: The predicate for the rules already folded.
        condition: The rule's qualified map or opaque condition.
        grant: True for a grant, False for a denial.

    Returns:
        The new accumulator.
    """
    if _is_blank(condition):
        return TRUE if grant else FALSE

    leaf = Leaf(condition)
    if accumulator == TRUE:
        return TRUE if grant else Not(leaf)
    if accumulator == FALSE:
        return leaf if grant else FALSE
    if grant:
        return Or(leaf, accumulator)
    return And(Not(leaf), accumulator)


def effective_condition(
    rule: Rule,
    model: type,
    *,
    excluded_paths: frozenset[RelationPath] = frozenset(),
    table_keys: Mapping[RelationPath, str] | None = None,
) -> Any:
    """The condition a rule contributes: its SQL fragment, else its qualified map."""
    custom = rule.custom_predicate
    if custom is not None:
        return custom
    return tableize_conditions(
        rule.conditions, model, excluded_paths=excluded_paths, table_keys=table_keys
    )


def compile_predicate(
    rules: Sequence[Rule],
    model: type,
    *,
    excluded_paths: frozenset[RelationPath] = frozenset(),
    table_keys: Mapping[RelationPath, str] | None = None,
) -> PredicateNode:
    """Fold declared rules (oldest first) into one predicate tree.

    Later rules take precedence: a later grant is OR'd onto what came
    before, a later denial is carved out of it with AND NOT. A single
    grant compiles to its bare leaf.

    Args:
        rules: Relevant rules in declaration order.
        model: The subject model.
        excluded_paths: Relation paths from the join plan whose nested
            relations are hoisted during normalization.
        table_keys: Key per joined relation path, from ``compiler._joins.table_keys``.

    Returns:
        The predicate tree. FALSE when *rules* is empty.

    Example::

        compile_predicate([grant_own_posts, deny_hidden_comments], Post)
        # And(Not(Leaf({"comments": {"hidden": True}})), Leaf({"author_id": 1}))
    """
    if not rules:
        return FALSE

    if len(rules) == 1 and rules[0].is_grant:
        condition = effective_condition(
            rules[0], model, excluded_paths=excluded_paths, table_keys=table_keys
        )
        return TRUE if _is_blank(condition) else Leaf(condition)

    accumulator: PredicateNode = FALSE
    for rule in rules:
        condition = effective_condition(
            rule, model, excluded_paths=excluded_paths, table_keys=table_keys
        )
        accumulator = merge_conditions(accumulator, condition, rule.is_grant)
    return accumulator
