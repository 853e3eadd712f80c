"""sqla-rulescope — compile ordered grant/deny rules into SQLAlchemy filters.

Rules are declared oldest first; later rules take precedence and denials
carve out of earlier grants. Conditions on related models compile into
joins plus table-qualified filters. No records are loaded.

Example::

    from sqla_rulescope import RuleRegistry, accessible_by

    rules = RuleRegistry()
    rules.grant("manage", Post, {"author_id": current_user.id})
    rules.deny("manage", Post, {"comments": {"hidden": True}})

    stmt = accessible_by(select(Post), rules, action="update")
    result = session.execute(stmt)
"""

from importlib.metadata import PackageNotFoundError, version

from sqla_rulescope.compiler._joins import JoinPlan
from sqla_rulescope.compiler._query import (
    CompiledRules,
    accessible_by,
    compile_rules,
    render_compiled,
)
from sqla_rulescope.config._config import RuleScopeConfig, configure
from sqla_rulescope.exceptions import (
    NoRulesError,
    RuleDefinitionError,
    RuleScopeError,
    ScopeMergeError,
    UnknownFieldError,
)
from sqla_rulescope.explain._query import explain_rules
from sqla_rulescope.rules._base import Rule
from sqla_rulescope.rules._conditions import ExpressionCondition, ScopeCondition, SQLFragment
from sqla_rulescope.rules._registry import RuleRegistry

try:
    __version__ = version("sqla-rulescope")
except PackageNotFoundError:
    __version__ = "dev"

__all__ = [
    "__version__",
    "CompiledRules",
    "ExpressionCondition",
    "JoinPlan",
    "NoRulesError",
    "Rule",
    "RuleDefinitionError",
    "RuleRegistry",
    "RuleScopeConfig",
    "RuleScopeError",
    "SQLFragment",
    "ScopeCondition",
    "ScopeMergeError",
    "UnknownFieldError",
    "accessible_by",
    "compile_rules",
    "configure",
    "explain_rules",
    "render_compiled",
]
