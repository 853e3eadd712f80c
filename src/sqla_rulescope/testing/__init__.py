"""sqla-rulescope testing utilities — assertions, isolation, and fixtures.

- **Assertion helpers**: ``assert_accessible``, ``assert_inaccessible``,
  ``assert_query_contains``.
- **Isolation**: ``isolated_config`` swaps the global config.
- **Fixtures**: ``rule_registry``, ``isolated_rulescope_config``.

Example::

    from sqla_rulescope.testing import assert_accessible
    from sqlalchemy import select

    def test_author_reads_own_posts(session, sample_data, rule_registry):
        rule_registry.grant("read", Post, {"author_id": 1})
        assert_accessible(session, select(Post), rule_registry, "read", expected_ids={1, 2})
"""

from sqla_rulescope.testing._assertions import (
    assert_accessible,
    assert_inaccessible,
    assert_query_contains,
)
from sqla_rulescope.testing._fixtures import isolated_rulescope_config, rule_registry
from sqla_rulescope.testing._isolation import isolated_config

__all__ = [
    "assert_accessible",
    "assert_inaccessible",
    "assert_query_contains",
    "isolated_config",
    "isolated_rulescope_config",
    "rule_registry",
]
