"""Opaque rule conditions: engine-native payloads the compiler cannot inspect.

Each variant carries its SQLAlchemy payload and knows how to render
itself into a ``ColumnElement[bool]`` for a given model.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import ColumnElement, Select, bindparam, text, tuple_
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.sql.elements import Grouping

__all__ = [
    "ExpressionCondition",
    "OpaqueCondition",
    "SQLFragment",
    "ScopeCondition",
]


class OpaqueCondition:
    """Base for conditions that are merged only as a whole, never field by field."""

    __slots__ = ()

    def render(self, model: type) -> ColumnElement[bool]:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class SQLFragment(OpaqueCondition):
    """A raw SQL predicate with named bind parameters.

    Parameters are bound with ``unique=True`` so several fragments may
    reuse the same parameter name inside one statement.

    Example::

        SQLFragment("posts.priority > :min_priority", {"min_priority": 3})
    """

    sql: str
    params: Mapping[str, Any] = field(default_factory=dict)

    @property
    def blank(self) -> bool:
        return not self.sql.strip()

    def render(self, model: type) -> ColumnElement[bool]:
        clause = text(self.sql).bindparams(
            *(bindparam(key, value, unique=True) for key, value in self.params.items())
        )
        return Grouping(clause)


@dataclass(frozen=True, slots=True)
class ExpressionCondition(OpaqueCondition):
    """A pre-built SQLAlchemy boolean expression.

    Rules carrying one are unmergeable: the compiler folds every rule's
    raw condition instead of normalized condition maps.
    """

    expression: ColumnElement[bool]

    def render(self, model: type) -> ColumnElement[bool]:
        return self.expression


@dataclass(frozen=True, slots=True)
class ScopeCondition(OpaqueCondition):
    """A pre-built ``Select`` over the rule's subject.

    Rendered as ``<primary key> IN (<statement>)`` with correlation
    disabled, so the scope keeps its own FROM clause and joins.
    """

    statement: Select[Any]

    def render(self, model: type) -> ColumnElement[bool]:
        pk = sa_inspect(model).primary_key
        subquery = self.statement.with_only_columns(*pk).correlate(None)
        if len(pk) == 1:
            return pk[0].in_(subquery)
        return tuple_(*pk).in_(subquery)
