"""Compiler: rules to predicate trees, join plans, and SQLAlchemy filters."""

from sqla_rulescope.compiler._joins import (
    JoinPlan,
    clean_joins,
    merge_joins,
    plan_joins,
    table_keys,
    walk_join_plan,
)
from sqla_rulescope.compiler._metadata import (
    RelationInfo,
    resolve_relation,
    traverse_relationship_path,
)
from sqla_rulescope.compiler._normalize import tableize_conditions
from sqla_rulescope.compiler._predicate import (
    FALSE,
    TRUE,
    And,
    FalseNode,
    Leaf,
    Not,
    Or,
    PredicateNode,
    TrueNode,
    compile_predicate,
    merge_conditions,
)
from sqla_rulescope.compiler._query import (
    CompiledRules,
    accessible_by,
    apply_compiled,
    compile_rules,
    render_compiled,
)
from sqla_rulescope.compiler._render import (
    JoinedTable,
    apply_join_plan,
    joined_tables,
    render_conditions,
    render_predicate,
)

__all__ = [
    "FALSE",
    "TRUE",
    "And",
    "CompiledRules",
    "FalseNode",
    "JoinPlan",
    "JoinedTable",
    "Leaf",
    "Not",
    "Or",
    "PredicateNode",
    "RelationInfo",
    "TrueNode",
    "accessible_by",
    "apply_compiled",
    "apply_join_plan",
    "clean_joins",
    "compile_predicate",
    "compile_rules",
    "joined_tables",
    "merge_conditions",
    "merge_joins",
    "plan_joins",
    "render_compiled",
    "render_conditions",
    "render_predicate",
    "resolve_relation",
    "table_keys",
    "tableize_conditions",
    "traverse_relationship_path",
    "walk_join_plan",
]
