"""Tests for compiler/_query.py — compile_rules() and accessible_by()."""

from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from sqla_rulescope.compiler._joins import JoinPlan
from sqla_rulescope.compiler._predicate import FALSE, TRUE, And, Leaf, Not, Or
from sqla_rulescope.compiler._query import (
    CompiledRules,
    accessible_by,
    apply_compiled,
    compile_rules,
)
from sqla_rulescope.config._config import RuleScopeConfig
from sqla_rulescope.exceptions import NoRulesError, ScopeMergeError, UnknownFieldError
from sqla_rulescope.rules import (
    ExpressionCondition,
    Rule,
    RuleRegistry,
    ScopeCondition,
    SQLFragment,
)
from tests.conftest import Post, compile_sql


def grant(conditions=None) -> Rule:
    return Rule("grant", "read", Post, conditions)


def deny(conditions=None) -> Rule:
    return Rule("deny", "read", Post, conditions)


def post_ids(session: Session, stmt) -> set[int]:
    return {post.id for post in session.execute(stmt).scalars().all()}


class TestCompileRules:
    def test_returns_compiled_rules(self):
        compiled = compile_rules([grant({"author_id": 1})], Post, action="read")
        assert isinstance(compiled, CompiledRules)
        assert compiled.model is Post
        assert compiled.action == "read"
        assert compiled.predicate == Leaf({"author_id": 1})
        assert compiled.join_plan.is_empty
        assert compiled.mergeable

    def test_action_defaults_to_config(self):
        compiled = compile_rules(
            [grant()], Post, config=RuleScopeConfig(default_action="index")
        )
        assert compiled.action == "index"

    def test_no_rules_denies_all(self):
        compiled = compile_rules([], Post, action="read")
        assert compiled.predicate == FALSE
        assert compiled.denies_all
        assert compiled.join_plan == JoinPlan()

    def test_no_rules_raises_when_configured(self):
        with pytest.raises(NoRulesError) as exc_info:
            compile_rules([], Post, action="read", config=RuleScopeConfig(on_missing_rules="raise"))
        assert exc_info.value.subject == "Post"
        assert exc_info.value.action == "read"

    def test_unconditional_grant_is_unrestricted(self):
        assert compile_rules([grant()], Post).unrestricted

    def test_plans_joins_before_folding(self):
        compiled = compile_rules(
            [grant({"author_id": 1}), deny({"comments": {"author": {"role": "viewer"}}})],
            Post,
        )
        assert compiled.join_plan.joins == [{"comments": ["author"]}]
        assert compiled.predicate == And(
            Not(Leaf({"users": {"role": "viewer"}})), Leaf({"author_id": 1})
        )

    def test_expression_condition_forces_raw_fold(self):
        expression = ExpressionCondition(Post.priority >= 3)
        compiled = compile_rules([grant(expression), grant({"author_id": 3})], Post)
        assert not compiled.mergeable
        assert compiled.predicate == Or(Leaf({"author_id": 3}), Leaf(expression))

    def test_raw_fold_carves_out_denials(self):
        expression = ExpressionCondition(Post.priority >= 3)
        compiled = compile_rules(
            [grant(expression), deny({"is_published": False})], Post
        )
        assert compiled.predicate == And(Not(Leaf({"is_published": False})), Leaf(expression))

    def test_raw_fold_with_unconditional_deny_is_false(self):
        expression = ExpressionCondition(Post.priority >= 3)
        assert compile_rules([grant(expression), deny()], Post).predicate == FALSE

    def test_raw_fold_with_unconditional_grant(self):
        expression = ExpressionCondition(Post.priority >= 3)
        compiled = compile_rules([grant(expression), grant(), deny({"priority": 5})], Post)
        assert compiled.predicate == Not(Leaf({"priority": 5}))

    def test_raw_fold_validates_condition_maps(self):
        expression = ExpressionCondition(Post.priority >= 3)
        with pytest.raises(UnknownFieldError):
            compile_rules([grant(expression), grant({"nope": 1})], Post)

    def test_raw_fold_validates_nested_condition_maps(self):
        expression = ExpressionCondition(Post.priority >= 3)
        with pytest.raises(UnknownFieldError):
            compile_rules([grant(expression), deny({"comments": {"nope": 1}})], Post)

    def test_raw_fold_keeps_declaration_order(self):
        expression = ExpressionCondition(Post.priority >= 1)
        compiled = compile_rules(
            [grant(expression), deny({"is_published": False}), grant({"author_id": 1})], Post
        )
        assert compiled.predicate == Or(
            Leaf({"author_id": 1}),
            And(Not(Leaf({"is_published": False})), Leaf(expression)),
        )

    def test_raw_fold_leaves_relation_maps_unnormalized(self):
        expression = ExpressionCondition(Post.priority >= 3)
        compiled = compile_rules(
            [grant(expression), deny({"comments": {"author": {"role": "viewer"}}})], Post
        )
        assert compiled.join_plan.joins == [{"comments": ["author"]}]
        assert compiled.predicate == And(
            Not(Leaf({"comments": {"author": {"role": "viewer"}}})), Leaf(expression)
        )

    def test_repeated_table_gets_its_own_key(self):
        compiled = compile_rules(
            [grant({"author": {"role": "admin"}}), deny({"comments": {"author": {"role": "viewer"}}})],
            Post,
        )
        assert compiled.predicate == And(
            Not(Leaf({"comments_author": {"role": "viewer"}})),
            Leaf({"users": {"role": "admin"}}),
        )

    def test_scope_conflicting_with_map_raises(self):
        scope = grant(ScopeCondition(select(Post).where(Post.priority >= 3)))
        other = grant({"author_id": 1})
        with pytest.raises(ScopeMergeError) as exc_info:
            compile_rules([scope, other], Post, action="read")
        assert exc_info.value.rules == (scope, other)
        assert "read" in str(exc_info.value)

    def test_scope_merges_with_unconditional_rules(self):
        scope = grant(ScopeCondition(select(Post).where(Post.priority >= 3)))
        assert compile_rules([scope, grant()], Post).unrestricted

    def test_scope_merges_with_same_statement(self):
        statement = select(Post).where(Post.priority >= 3)
        compiled = compile_rules(
            [grant(ScopeCondition(statement)), grant(ScopeCondition(statement))], Post
        )
        assert compiled.predicate == Or(
            Leaf(ScopeCondition(statement)), Leaf(ScopeCondition(statement))
        )

    def test_scope_with_different_statement_raises(self):
        first = grant(ScopeCondition(select(Post).where(Post.priority >= 3)))
        second = grant(ScopeCondition(select(Post).where(Post.priority >= 3)))
        with pytest.raises(ScopeMergeError):
            compile_rules([first, second], Post)

    def test_unknown_field_raises(self):
        with pytest.raises(UnknownFieldError):
            compile_rules([grant({"nope": 1})], Post)

    def test_deterministic(self):
        rules = [grant({"author_id": 1}), deny({"comments": {"hidden": True}})]
        assert compile_rules(rules, Post) == compile_rules(rules, Post)


class TestApplyCompiled:
    def test_unrestricted_leaves_statement_untouched(self):
        stmt = select(Post)
        assert apply_compiled(stmt, compile_rules([grant()], Post)) is stmt

    def test_denies_all_adds_false_without_joins(self):
        compiled = compile_rules([grant({"comments": {"hidden": True}}), deny()], Post)
        sql = compile_sql(apply_compiled(select(Post), compiled))
        assert "WHERE" in sql
        assert "JOIN" not in sql

    def test_distinct_only_when_joining(self):
        config = RuleScopeConfig(distinct_joins=True)
        plain = apply_compiled(select(Post), compile_rules([grant({"author_id": 1})], Post), config=config)
        assert "DISTINCT" not in compile_sql(plain)

        joined = apply_compiled(
            select(Post),
            compile_rules([grant({"comments": {"hidden": False}})], Post),
            config=config,
        )
        assert "DISTINCT" in compile_sql(joined)


class TestAccessibleBySQL:
    def test_adds_where_clause(self):
        sql = compile_sql(accessible_by(select(Post), [grant({"author_id": 1})], action="read"))
        assert "WHERE posts.author_id = 1" in sql

    def test_preserves_existing_where(self):
        stmt = select(Post).where(Post.title == "x")
        sql = compile_sql(accessible_by(stmt, [grant({"author_id": 1})], action="read"))
        assert "posts.title = 'x'" in sql
        assert "posts.author_id = 1" in sql

    def test_model_class_shorthand(self):
        sql = compile_sql(accessible_by(Post, [grant({"author_id": 1})], action="read"))
        assert sql.startswith("SELECT")
        assert "FROM posts" in sql

    def test_column_statement_needs_explicit_model(self):
        stmt = select(Post.id)
        sql = compile_sql(accessible_by(stmt, [grant({"author_id": 1})], action="read", model=Post))
        assert "posts.author_id = 1" in sql

    def test_undeterminable_model_raises(self):
        from sqlalchemy import literal

        with pytest.raises(ValueError, match="model="):
            accessible_by(select(literal(1)), [grant()], action="read")

    def test_joins_relations(self):
        sql = compile_sql(
            accessible_by(select(Post), [grant({"comments": {"hidden": False}})], action="read")
        )
        assert "JOIN comments ON" in sql

    def test_outer_join_strategy(self):
        sql = compile_sql(
            accessible_by(
                select(Post),
                [grant({"comments": {"hidden": False}})],
                action="read",
                config=RuleScopeConfig(join_strategy="outer"),
            )
        )
        assert "LEFT OUTER JOIN comments" in sql

    def test_repeated_table_joined_through_alias(self):
        rules = [
            grant({"author": {"role": "admin"}}),
            deny({"comments": {"author": {"role": "viewer"}}}),
        ]
        sql = compile_sql(accessible_by(select(Post), rules, action="read"))
        assert "JOIN users ON" in sql
        assert "JOIN users AS comments_author ON" in sql
        assert "users.role = 'admin'" in sql
        assert "comments_author.role = 'viewer'" in sql


class TestAccessibleByDatabase:
    """End-to-end filtering against the seeded SQLite database."""

    def _ids(self, session, rules, **kwargs) -> set[int]:
        return post_ids(session, accessible_by(select(Post), rules, action="read", **kwargs))

    def test_single_grant(self, session, sample_data):
        assert self._ids(session, [grant({"author_id": 1})]) == {1, 2}

    def test_grant_then_deny_relation(self, session, sample_data):
        rules = [grant({"author_id": 1}), deny({"comments": {"hidden": True}})]
        assert self._ids(session, rules) == {1}

    def test_published_without_hidden_comments(self, session, sample_data):
        rules = [grant({"is_published": True}), deny({"comments": {"hidden": True}})]
        assert self._ids(session, rules) == {1, 3}

    def test_inner_join_duplicates_rows(self, session, sample_data):
        rules = [grant({"is_published": True}), grant({"comments": {"hidden": False}})]
        stmt = accessible_by(select(Post), rules, action="read")
        rows = session.execute(stmt).scalars().all()
        assert len(rows) == 3
        assert {post.id for post in rows} == {1, 3}

    def test_distinct_joins_removes_duplicates(self, session, sample_data):
        rules = [grant({"is_published": True}), grant({"comments": {"hidden": False}})]
        stmt = accessible_by(
            select(Post), rules, action="read", config=RuleScopeConfig(distinct_joins=True)
        )
        assert len(session.execute(stmt).scalars().all()) == 2

    def test_outer_join_keeps_records_without_related_rows(self, session, sample_data):
        rules = [grant({"is_published": True}), grant({"comments": {"hidden": False}})]
        ids = self._ids(session, rules, config=RuleScopeConfig(join_strategy="outer"))
        assert ids == {1, 3, 4}

    def test_expression_condition(self, session, sample_data):
        rules = [grant(ExpressionCondition(Post.priority >= 3)), grant({"author_id": 3})]
        assert self._ids(session, rules) == {2, 3, 4}

    def test_expression_condition_with_denial(self, session, sample_data):
        rules = [
            grant(ExpressionCondition(Post.priority >= 3)),
            grant({"author_id": 3}),
            deny({"is_published": False}),
        ]
        assert self._ids(session, rules) == {3, 4}

    def test_expression_condition_later_grant_overrides_denial(self, session, sample_data):
        rules = [
            grant(ExpressionCondition(Post.priority >= 1)),
            deny({"is_published": False}),
            grant({"author_id": 1}),
        ]
        assert self._ids(session, rules) == {1, 2, 3, 4}

    def test_expression_condition_with_nested_relation_denial(self, session, sample_data):
        rules = [
            grant(ExpressionCondition(Post.priority >= 3)),
            deny({"comments": {"author": {"role": "viewer"}}}),
        ]
        assert self._ids(session, rules) == {3}

    def test_single_scope(self, session, sample_data):
        rules = [grant(ScopeCondition(select(Post).where(Post.priority >= 3)))]
        assert self._ids(session, rules) == {2, 3}

    def test_scope_with_unconditional_grant(self, session, sample_data):
        rules = [grant(ScopeCondition(select(Post).where(Post.priority >= 3))), grant()]
        assert self._ids(session, rules) == {1, 2, 3, 4}

    def test_scope_with_map_raises(self, session, sample_data):
        rules = [
            grant(ScopeCondition(select(Post).where(Post.priority >= 3))),
            grant({"author_id": 1}),
        ]
        with pytest.raises(ScopeMergeError):
            accessible_by(select(Post), rules, action="read")

    def test_nested_relation_through_join(self, session, sample_data):
        rules = [grant({"comments": {"author": {"role": "admin"}}})]
        assert self._ids(session, rules) == {3}

    def test_same_table_reached_by_two_paths(self, session, sample_data):
        rules = [
            grant({"author": {"role": "admin"}}),
            deny({"comments": {"author": {"role": "viewer"}}}),
        ]
        assert self._ids(session, rules) == {1}

    def test_three_level_relation(self, session, sample_data):
        rules = [grant({"comments": {"author": {"organization": {"name": "Globex"}}}})]
        assert self._ids(session, rules) == {2}

    def test_many_to_many_relation(self, session, sample_data):
        assert self._ids(session, [grant({"tags": {"visibility": "public"}})]) == {1}

    def test_sql_fragment(self, session, sample_data):
        rules = [
            grant(SQLFragment("posts.priority > :p", {"p": 2})),
            grant({"author_id": 3}),
        ]
        assert self._ids(session, rules) == {2, 3, 4}

    def test_collection_value(self, session, sample_data):
        assert self._ids(session, [grant({"author_id": [2, 3]})]) == {3, 4}

    def test_range_value(self, session, sample_data):
        assert self._ids(session, [grant({"priority": range(2, 4)})]) == {3, 4}

    def test_no_rules_returns_nothing(self, session, sample_data):
        assert self._ids(session, []) == set()

    def test_no_rules_raises_when_configured(self, session, sample_data):
        with pytest.raises(NoRulesError):
            self._ids(session, [], config=RuleScopeConfig(on_missing_rules="raise"))

    def test_unknown_field(self, session, sample_data):
        with pytest.raises(UnknownFieldError):
            self._ids(session, [grant({"nope": 1})])

    def test_existing_where_preserved(self, session, sample_data):
        stmt = select(Post).where(Post.is_published == True)  # noqa: E712
        result = accessible_by(stmt, [grant({"author_id": 1})], action="read")
        assert post_ids(session, result) == {1}

    def test_model_shorthand(self, session, sample_data):
        result = accessible_by(Post, [grant({"author_id": 3})], action="read")
        assert post_ids(session, result) == {4}

    def test_registry_filters_other_actions(self, session, sample_data):
        rules = RuleRegistry()
        rules.grant("update", Post, {"author_id": 1})
        rules.grant("read", Post)
        assert post_ids(session, accessible_by(Post, rules, action="read")) == {1, 2, 3, 4}
        assert post_ids(session, accessible_by(Post, rules, action="update")) == {1, 2}

    def test_manage_covers_every_action(self, session, sample_data):
        rules = RuleRegistry()
        rules.grant("manage", Post, {"author_id": 2})
        assert post_ids(session, accessible_by(Post, rules, action="destroy")) == {3}

    def test_later_grant_overrides_earlier_deny(self, session, sample_data):
        rules = RuleRegistry()
        rules.deny("read", Post, {"is_published": False})
        rules.grant("read", Post, {"author_id": 1})
        assert post_ids(session, accessible_by(Post, rules, action="read")) == {1, 2}
