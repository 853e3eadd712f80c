"""Render predicate trees and join plans into SQLAlchemy constructs."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import ColumnElement, Select, and_, false, not_, or_, true
from sqlalchemy.orm import aliased

from sqla_rulescope._types import RelationPath
from sqla_rulescope.compiler._joins import JoinPlan, table_keys, walk_join_plan
from sqla_rulescope.compiler._metadata import (
    find_relation,
    is_column,
    traverse_relationship_path,
)
from sqla_rulescope.compiler._predicate import (
    And,
    FalseNode,
    Leaf,
    Not,
    Or,
    PredicateNode,
    TrueNode,
)
from sqla_rulescope.exceptions import UnknownFieldError
from sqla_rulescope.rules._conditions import OpaqueCondition

__all__ = [
    "JoinedTable",
    "apply_join_plan",
    "joined_tables",
    "render_conditions",
    "render_predicate",
]

_COLLECTION_TYPES = (list, tuple, set, frozenset)


@dataclass(frozen=True, slots=True)
class JoinedTable:
    """One join of a plan.

    Attributes:
        path: Relation path from the subject model.
        key: Name condition maps address the join by (see ``table_keys``).
        model: The related model class.
        entity: What the statement joins: *model* itself, or an
            ``aliased()`` form of it when its table is already joined.
    """

    path: RelationPath
    key: str
    model: type
    entity: Any

    @property
    def is_aliased(self) -> bool:
        return self.entity is not self.model


def joined_tables(model: type, join_plan: JoinPlan | None) -> dict[RelationPath, JoinedTable]:
    """Resolve every join in *join_plan*, parents first, keyed by relation path.

    Example::

        joined = joined_tables(Post, JoinPlan(joins=["author", {"comments": ["author"]}]))
        joined[("author",)].entity                 # User
        joined[("comments", "author")].entity      # aliased(User, name="comments_author")
    """
    joined: dict[RelationPath, JoinedTable] = {}
    if join_plan is None or join_plan.is_empty:
        return joined

    keys = table_keys(model, join_plan)
    for path, relation in walk_join_plan(model, join_plan):
        key = keys[path]
        entity: Any = relation.target
        if key != relation.table_name:
            entity = aliased(relation.target, name=key)
        joined[path] = JoinedTable(path=path, key=key, model=relation.target, entity=entity)
    return joined


def apply_join_plan(
    stmt: Select[Any],
    model: type,
    join_plan: JoinPlan,
    *,
    outer: bool = False,
) -> Select[Any]:
    """Join every relation in *join_plan* onto *stmt*, parents first.

    A table reached a second time is joined through an alias.

    Args:
        stmt: The statement selecting from *model*.
        model: The subject model the plan starts from.
        join_plan: The plan from ``plan_joins``.
        outer: Use LEFT OUTER JOIN instead of INNER JOIN.

    Returns:
        A new ``Select`` with the joins applied.
    """
    joined = joined_tables(model, join_plan)
    for path, table in joined.items():
        parent: Any = model if len(path) == 1 else joined[path[:-1]].entity
        target: Any = getattr(parent, path[-1])
        if table.is_aliased:
            target = target.of_type(table.entity)
        stmt = stmt.outerjoin(target) if outer else stmt.join(target)
    return stmt


@dataclass(frozen=True, slots=True)
class _JoinIndex:
    by_path: Mapping[RelationPath, JoinedTable] = field(default_factory=dict)
    by_key: Mapping[str, JoinedTable] = field(default_factory=dict)

    @classmethod
    def of(cls, joined: Mapping[RelationPath, JoinedTable] | None) -> _JoinIndex:
        if not joined:
            return cls()
        return cls(by_path=dict(joined), by_key={t.key: t for t in joined.values()})


_NO_JOINS = _JoinIndex()


def render_predicate(
    node: PredicateNode,
    model: type,
    join_plan: JoinPlan | None = None,
) -> ColumnElement[bool]:
    """Render a predicate tree into a ``ColumnElement[bool]``.

    Args:
        node: The compiled predicate tree.
        model: The subject model.
        join_plan: The plan whose joined tables leaf maps may address.

    Returns:
        A filter suitable for ``Select.where()``.
    """
    index = _JoinIndex.of(joined_tables(model, join_plan))
    return _render_node(node, model, index)


def _render_node(node: PredicateNode, model: type, index: _JoinIndex) -> ColumnElement[bool]:
    if isinstance(node, TrueNode):
        return true()
    if isinstance(node, FalseNode):
        return false()
    if isinstance(node, Not):
        return not_(_render_node(node.operand, model, index))
    if isinstance(node, And):
        return and_(_render_node(node.left, model, index), _render_node(node.right, model, index))
    if isinstance(node, Or):
        return or_(_render_node(node.left, model, index), _render_node(node.right, model, index))
    if isinstance(node, Leaf):
        return _render_map(node.conditions, model, model, (), index)
    raise TypeError(f"not a predicate node: {node!r}")


def render_conditions(
    conditions: Any,
    model: type,
    joined: Mapping[RelationPath, JoinedTable] | None = None,
) -> ColumnElement[bool]:
    """Render one condition map (or opaque condition) against *model*.

    Column keys compare by value. A mapping value addresses a related
    model: through its join when the relation's path (or the key itself,
    for normalized maps) is in *joined*, otherwise through an EXISTS
    subquery. An empty map renders as TRUE.

    Raises:
        UnknownFieldError: If a key names neither a column, a
            relationship, nor a joined table.
    """
    return _render_map(conditions, model, model, (), _JoinIndex.of(joined))


def _render_map(
    conditions: Any,
    model: type,
    entity: Any,
    path: RelationPath,
    index: _JoinIndex,
) -> ColumnElement[bool]:
    if isinstance(conditions, OpaqueCondition):
        return conditions.render(model)

    clauses = [
        _render_entry(model, entity, path, key, value, index) for key, value in conditions.items()
    ]
    if not clauses:
        return true()
    if len(clauses) == 1:
        return clauses[0]
    return and_(*clauses)


def _render_entry(
    model: type,
    entity: Any,
    path: RelationPath,
    key: str,
    value: Any,
    index: _JoinIndex,
) -> ColumnElement[bool]:
    if is_column(model, key):
        return _compare(getattr(entity, key), value)

    relation = find_relation(model, key)
    if isinstance(value, Mapping):
        joined = index.by_path.get(path + (key,)) if relation is not None else None
        if joined is None:
            joined = index.by_key.get(key)
        if joined is not None:
            return _render_map(value, joined.model, joined.entity, joined.path, index)
        if relation is None:
            raise UnknownFieldError(model=model.__name__, field=key)
        inner = _render_map(value, relation.target, relation.target, (), _NO_JOINS)
        return traverse_relationship_path(model, [relation.name], inner, entity=entity)

    if relation is not None:
        result: ColumnElement[bool] = getattr(entity, key) == value
        return result

    raise UnknownFieldError(model=model.__name__, field=key)


def _compare(column: Any, value: Any) -> ColumnElement[bool]:
    if value is None:
        return column.is_(None)
    if isinstance(value, range):
        if value.step != 1:
            return column.in_(list(value))
        return and_(column >= value.start, column < value.stop)
    if isinstance(value, _COLLECTION_TYPES):
        return column.in_(list(value))
    result: ColumnElement[bool] = column == value
    return result
