"""Join planning: the deduplicated relation traversals a predicate needs."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from sqla_rulescope._types import JoinSpec, RelationPath
from sqla_rulescope.compiler._metadata import RelationInfo, resolve_relation, table_name
from sqla_rulescope.rules._base import Rule

__all__ = [
    "JoinPlan",
    "clean_joins",
    "merge_joins",
    "plan_joins",
    "table_keys",
    "walk_join_plan",
]


@dataclass(frozen=True, slots=True)
class JoinPlan:
    """Relation traversals required to evaluate compiled conditions.

    Attributes:
        joins: Join specs. A bare relation name, or ``{relation: [...]}``
            when the relation has nested relations of its own.
        excluded_paths: Paths of relations whose nested relations were
            flattened, depth-first in the order they were flattened.

    Example::

        JoinPlan(joins=["author", {"comments": ["author"]}],
                 excluded_paths=(("comments",),))
    """

    joins: list[JoinSpec] = field(default_factory=list)
    excluded_paths: tuple[RelationPath, ...] = ()

    @property
    def excluded(self) -> list[str]:
        """Names of the relations whose children were flattened."""
        return [path[-1] for path in self.excluded_paths]

    @property
    def excluded_path_set(self) -> frozenset[RelationPath]:
        return frozenset(self.excluded_paths)

    @property
    def is_empty(self) -> bool:
        return not self.joins


def merge_joins(base: dict[str, Any], add: Mapping[str, Any]) -> dict[str, Any]:
    """Deep-merge association skeleton *add* into *base* (mutating *base*).

    A relation present on both sides is merged, never duplicated; nested
    sub-relations under the same name merge recursively.

    Returns:
        *base*, for chaining.
    """
    for name, nested in add.items():
        if isinstance(base.get(name), dict):
            if nested:
                merge_joins(base[name], nested)
        else:
            base[name] = merge_joins({}, nested)
    return base


def clean_joins(
    joins_hash: Mapping[str, Any],
    path: RelationPath = (),
) -> tuple[list[JoinSpec], list[RelationPath]]:
    """Flatten a merged skeleton into join specs and excluded relation paths.

    Args:
        joins_hash: The merged association skeleton.
        path: Relation path of *joins_hash* from the subject model.

    Returns:
        ``(joins, excluded_paths)``. A relation is excluded the moment
        its children are flattened, so paths come out depth-first.
    """
    joins: list[JoinSpec] = []
    excluded: list[RelationPath] = []

    for name, nested in joins_hash.items():
        if not nested:
            joins.append(name)
            continue
        relation_path = path + (name,)
        excluded.append(relation_path)
        sub_joins, sub_excluded = clean_joins(nested, relation_path)
        excluded.extend(sub_excluded)
        joins.append({name: sub_joins})

    return joins, excluded


def plan_joins(rules: Sequence[Rule]) -> JoinPlan:
    """Derive the join plan for *rules*.

    Example::

        plan = plan_joins(rules)
        plan.joins      # ["comments"]
        plan.excluded   # []
    """
    aggregate: dict[str, Any] = {}
    for rule in rules:
        merge_joins(aggregate, rule.associations)

    if not aggregate:
        return JoinPlan()

    joins, excluded = clean_joins(aggregate)
    return JoinPlan(joins=joins, excluded_paths=tuple(excluded))


def walk_join_plan(
    model: type,
    join_plan: JoinPlan,
) -> Iterator[tuple[RelationPath, RelationInfo]]:
    """Yield ``(relation path, relation)`` for every join in *join_plan*, parents first.

    Raises:
        UnknownFieldError: If a join spec names no relationship on its model.
    """

    def walk(
        source: type, specs: list[JoinSpec], path: RelationPath
    ) -> Iterator[tuple[RelationPath, RelationInfo]]:
        for spec in specs:
            items = [(spec, [])] if isinstance(spec, str) else list(spec.items())
            for name, nested in items:
                relation = resolve_relation(source, name)
                relation_path = path + (name,)
                yield relation_path, relation
                yield from walk(relation.target, nested, relation_path)

    return walk(model, join_plan.joins, ())


def table_keys(model: type, join_plan: JoinPlan) -> dict[RelationPath, str]:
    """Name the table each joined relation path is addressed by.

    The first join to a table is addressed by the table name. A later join
    to a table already in the statement (including the subject's own
    table) is aliased, and addressed by its relation path joined with
    underscores.

    Example::

        plan = JoinPlan(joins=["author", {"comments": ["author"]}])
        table_keys(Post, plan)
        # {("author",): "users", ("comments",): "comments",
        #  ("comments", "author"): "comments_author"}
    """
    keys: dict[RelationPath, str] = {}
    taken = {table_name(model)}
    for path, relation in walk_join_plan(model, join_plan):
        key = relation.table_name
        if key in taken:
            base = "_".join(path)
            key, suffix = base, 2
            while key in taken:
                key = f"{base}_{suffix}"
                suffix += 1
        taken.add(key)
        keys[path] = key
    return keys
