"""Exception hierarchy for sqla-rulescope."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sqla_rulescope.rules._base import Rule

__all__ = [
    "NoRulesError",
    "RuleDefinitionError",
    "RuleScopeError",
    "ScopeMergeError",
    "UnknownFieldError",
]


class RuleScopeError(Exception):
    """Base exception for all sqla-rulescope errors."""


class RuleDefinitionError(RuleScopeError):
    """A rule was declared with malformed input.

    Raised at rule construction time, e.g. for an unknown effect or a
    condition value that is neither a mapping nor an opaque condition.
    """


class ScopeMergeError(RuleScopeError):
    """A pre-built scope cannot be merged with other rule conditions.

    Attributes:
        action: The action of the offending scope rule.
        subject: Name of the subject model.
        rules: The conflicting rules (scope rule first).

    Example::

        try:
            compile_rules(rules, Post)
        except ScopeMergeError as exc:
            print(exc.action, exc.subject, [r.ordinal for r in exc.rules])
    """

    def __init__(self, *, action: str, subject: str, rules: Sequence[Rule]) -> None:
        self.action = action
        self.subject = subject
        self.rules = tuple(rules)
        described = ", ".join(repr(r) for r in self.rules)
        super().__init__(
            f"Unable to merge a scope with other conditions for {action!r} on {subject}. "
            f"Use a condition map or a SQL fragment instead. Conflicting rules: {described}"
        )


class UnknownFieldError(RuleScopeError):
    """A condition key is neither a column nor a relationship on the model.

    Attributes:
        model: Name of the model the key was resolved against.
        field: The unresolvable key.
    """

    def __init__(self, *, model: str, field: str) -> None:
        self.model = model
        self.field = field
        super().__init__(f"{model} has no column or relationship named {field!r}")


class NoRulesError(RuleScopeError):
    """No rules apply to (subject, action).

    Raised only when configured with ``on_missing_rules="raise"``;
    the default is to deny (WHERE FALSE).

    Attributes:
        subject: Name of the subject model.
        action: The action with no rules.
    """

    def __init__(self, *, subject: str, action: str) -> None:
        self.subject = subject
        self.action = action
        super().__init__(f"No rules declared for ({subject}, {action!r})")
