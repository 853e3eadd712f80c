"""Relation metadata lookups and relationship traversal over SQLAlchemy mappers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import ColumnElement
from sqlalchemy.inspection import inspect as sa_inspect
from sqlalchemy.orm import Mapper, RelationshipDirection, RelationshipProperty

from sqla_rulescope.exceptions import UnknownFieldError

__all__ = [
    "RelationInfo",
    "find_relation",
    "has_relation",
    "is_column",
    "resolve_relation",
    "table_name",
    "traverse_relationship_path",
]


@dataclass(frozen=True, slots=True)
class RelationInfo:
    """A relationship resolved on a source model.

    Attributes:
        name: The relationship attribute name.
        source: The model owning the relationship.
        target: The related model class.
        table_name: Storage identifier of the related model.
        many: True for ONETOMANY / MANYTOMANY relationships.
    """

    name: str
    source: type
    target: type
    table_name: str
    many: bool


def table_name(model: type) -> str:
    """Return the storage identifier (table name) of a mapped model."""
    mapper: Mapper[Any] = sa_inspect(model)
    return str(getattr(mapper.local_table, "name", model.__name__))


def is_column(model: type, name: str) -> bool:
    """Whether *name* is a column attribute on *model*."""
    mapper: Mapper[Any] = sa_inspect(model)
    return name in mapper.column_attrs


def has_relation(model: type, name: str) -> bool:
    """Whether *name* is a relationship attribute on *model*."""
    mapper: Mapper[Any] = sa_inspect(model)
    return name in mapper.relationships


def find_relation(model: type, name: str) -> RelationInfo | None:
    """Resolve relationship *name* on *model*, or ``None`` if there is none."""
    mapper: Mapper[Any] = sa_inspect(model)
    if name not in mapper.relationships:
        return None
    prop: RelationshipProperty[Any] = mapper.relationships[name]
    target: type = prop.mapper.class_
    return RelationInfo(
        name=name,
        source=model,
        target=target,
        table_name=table_name(target),
        many=prop.direction is not RelationshipDirection.MANYTOONE,
    )


def resolve_relation(model: type, name: str) -> RelationInfo:
    """Resolve relationship *name* on *model*.

    Raises:
        UnknownFieldError: If *model* has no relationship called *name*.
    """
    relation = find_relation(model, name)
    if relation is None:
        raise UnknownFieldError(model=model.__name__, field=name)
    return relation


def traverse_relationship_path(
    model: type,
    path: list[str],
    leaf_condition: ColumnElement[bool],
    *,
    entity: Any = None,
) -> ColumnElement[bool]:
    """Traverse a chain of relationships and wrap in EXISTS subqueries.

    Uses ``has()`` for MANYTOONE relationships and ``any()`` for
    ONETOMANY / MANYTOMANY relationships, producing nested EXISTS
    subqueries. Used for relation conditions whose relation is not
    part of the join plan.

    Args:
        model: The starting SQLAlchemy model class.
        path: List of relationship attribute names to traverse.
        leaf_condition: The filter condition to apply at the end of the path.
        entity: An aliased form of *model* to start from, when the first
            hop must correlate to an alias rather than the mapped table.

    Returns:
        A ``ColumnElement[bool]`` with nested EXISTS subqueries.

    Example::

        # Post -> author -> organization, where org.id == 1
        expr = traverse_relationship_path(
            Post, ["author", "organization"], Organization.id == 1
        )
    """
    if not path:
        return leaf_condition

    relation = resolve_relation(model, path[0])
    relationship_attr: Any = getattr(entity if entity is not None else model, relation.name)
    inner = traverse_relationship_path(relation.target, path[1:], leaf_condition)

    if relation.many:
        result: ColumnElement[bool] = relationship_attr.any(inner)
    else:
        result = relationship_attr.has(inner)
    return result
