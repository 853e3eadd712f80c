"""Condition normalization: rewrite relation keys into table-qualified keys."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqla_rulescope._types import RelationPath
from sqla_rulescope.compiler._metadata import has_relation, is_column, resolve_relation
from sqla_rulescope.exceptions import UnknownFieldError

__all__ = ["tableize_conditions"]


def tableize_conditions(
    conditions: Any,
    model: type,
    *,
    excluded_paths: frozenset[RelationPath] = frozenset(),
    table_keys: Mapping[RelationPath, str] | None = None,
    path: RelationPath = (),
    root: dict[str, Any] | None = None,
) -> Any:
    """Rewrite relation names in *conditions* into related table names.

    A mapping under a relation name becomes an entry keyed by the related
    table. When the relation at *path* is in *excluded_paths* (the Join
    Planner flattened its children), each nested relation's conditions
    are installed on the root map as a sibling entry instead of inline,
    so joined tables are addressed directly. Empty nested results are
    dropped. Non-mapping conditions are returned unchanged.

    Args:
        conditions: A condition map, or any scalar/opaque value.
        model: The model the keys of *conditions* belong to.
        excluded_paths: Relation paths whose nested relations are hoisted.
        table_keys: Key per joined relation path (see ``table_keys`` in
            ``compiler._joins``). Paths not listed use the related table name.
        path: Relation path from the subject model to *model*.
        root: The top-level result map. Internal to the recursion.

    Returns:
        The qualified condition map, or *conditions* itself when it is
        not a mapping.

    Raises:
        UnknownFieldError: If a key is neither a column nor a relationship.

    Example::

        tableize_conditions({"author_id": 1, "comments": {"hidden": True}}, Post)
        # {"author_id": 1, "comments": {"hidden": True}}

        tableize_conditions(
            {"comments": {"author": {"role": "admin"}}},
            Post,
            excluded_paths=frozenset({("comments",)}),
        )
        # {"users": {"role": "admin"}}
    """
    if not isinstance(conditions, Mapping):
        return conditions

    result: dict[str, Any] = {}
    if root is None:
        root = result
    store_on_root = path in excluded_paths

    for name, value in conditions.items():
        if isinstance(value, Mapping):
            relation = resolve_relation(model, name)
            nested = tableize_conditions(
                value,
                relation.target,
                excluded_paths=excluded_paths,
                table_keys=table_keys,
                path=path + (name,),
                root=root,
            )
            if not nested:
                continue
            key = relation.table_name
            if table_keys is not None:
                key = table_keys.get(path + (name,), key)
            # Excluded paths hoist to the root, not the parent: every joined
            # table is addressable there by its key.
            _install(root if store_on_root else result, key, nested)
        elif is_column(model, name) or has_relation(model, name):
            result[name] = value
        else:
            raise UnknownFieldError(model=model.__name__, field=name)

    return result


def _install(target: dict[str, Any], key: str, value: Any) -> None:
    existing = target.get(key)
    if isinstance(existing, Mapping) and isinstance(value, Mapping):
        merged = dict(existing)
        for name, nested in value.items():
            _install(merged, name, nested)
        target[key] = merged
    else:
        target[key] = value
