"""RuleRegistry: ordered, append-only store of declared rules."""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Iterator

from sqla_rulescope._types import ConditionMap
from sqla_rulescope.rules._base import Rule
from sqla_rulescope.rules._conditions import OpaqueCondition

__all__ = ["RuleRegistry"]


class RuleRegistry:
    """Registry of rules in declaration order.

    Rules usually depend on the current actor (``author_id: user.id``),
    so a registry is built per actor and request. Reads are safe to
    share once declaration is finished.

    Example::

        rules = RuleRegistry()
        rules.grant("read", Post, {"author_id": user.id})
        rules.deny("read", Post, {"comments": {"hidden": True}})
        relevant = rules.relevant("read", Post)
    """

    def __init__(self, rules: Iterable[Rule] = ()) -> None:
        self._rules: list[Rule] = []
        for rule in rules:
            self.add(rule)

    def add(self, rule: Rule) -> Rule:
        """Append *rule*, stamping its declaration ordinal.

        Args:
            rule: The rule to append. Its ``ordinal`` is overwritten.

        Returns:
            The stored rule (a copy carrying the new ordinal).
        """
        stamped = dataclasses.replace(rule, ordinal=len(self._rules))
        self._rules.append(stamped)
        return stamped

    def grant(
        self,
        actions: str | Iterable[str],
        subject: type,
        conditions: ConditionMap | OpaqueCondition | None = None,
    ) -> Rule:
        """Declare a grant. Shorthand for ``add(Rule("grant", ...))``."""
        return self.add(Rule("grant", _as_actions(actions), subject, conditions))

    def deny(
        self,
        actions: str | Iterable[str],
        subject: type,
        conditions: ConditionMap | OpaqueCondition | None = None,
    ) -> Rule:
        """Declare a denial. Shorthand for ``add(Rule("deny", ...))``."""
        return self.add(Rule("deny", _as_actions(actions), subject, conditions))

    def relevant(self, action: str, subject: type) -> list[Rule]:
        """Return the rules covering (action, subject), oldest first.

        Returns a fresh list so callers cannot mutate registry state.

        Example::

            for rule in rules.relevant("read", Post):
                print(rule.ordinal, rule.effect)
        """
        return [rule for rule in self._rules if rule.matches(action, subject)]

    def subjects(self) -> set[type]:
        """Return every subject with at least one declared rule."""
        return {rule.subject for rule in self._rules}

    def clear(self) -> None:
        """Remove all rules."""
        self._rules.clear()

    def __iter__(self) -> Iterator[Rule]:
        return iter(list(self._rules))

    def __len__(self) -> int:
        return len(self._rules)

    def __repr__(self) -> str:
        return f"RuleRegistry({len(self._rules)} rule(s))"


def _as_actions(actions: str | Iterable[str]) -> tuple[str, ...]:
    if isinstance(actions, str):
        return (actions,)
    return tuple(actions)
