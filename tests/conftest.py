"""Shared test fixtures for sqla-rulescope tests."""

from __future__ import annotations

import pytest
from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Table, create_engine
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    mapped_column,
    relationship,
    sessionmaker,
)

# ---------------------------------------------------------------------------
# Test models
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    pass


post_tags = Table(
    "post_tags",
    Base.metadata,
    Column("post_id", Integer, ForeignKey("posts.id"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id"), primary_key=True),
)


class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100))

    users: Mapped[list[User]] = relationship("User", back_populates="organization")


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100))
    role: Mapped[str] = mapped_column(String(50), default="viewer")
    org_id: Mapped[int | None] = mapped_column(ForeignKey("organizations.id"), nullable=True)

    organization: Mapped[Organization | None] = relationship(
        "Organization", back_populates="users"
    )
    posts: Mapped[list[Post]] = relationship("Post", back_populates="author")


class Post(Base):
    __tablename__ = "posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(200))
    is_published: Mapped[bool] = mapped_column(Boolean, default=False)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    author_id: Mapped[int] = mapped_column(ForeignKey("users.id"))

    author: Mapped[User] = relationship("User", back_populates="posts")
    comments: Mapped[list[Comment]] = relationship("Comment", back_populates="post")
    tags: Mapped[list[Tag]] = relationship("Tag", secondary=post_tags, back_populates="posts")


class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    body: Mapped[str] = mapped_column(String(200), default="")
    hidden: Mapped[bool] = mapped_column(Boolean, default=False)
    post_id: Mapped[int] = mapped_column(ForeignKey("posts.id"))
    author_id: Mapped[int] = mapped_column(ForeignKey("users.id"))

    post: Mapped[Post] = relationship("Post", back_populates="comments")
    author: Mapped[User] = relationship("User")


class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(50))
    visibility: Mapped[str] = mapped_column(String(20), default="public")

    posts: Mapped[list[Post]] = relationship("Post", secondary=post_tags, back_populates="tags")


def compile_sql(expr) -> str:
    """Compile a SQLAlchemy construct to SQL with literal binds."""
    return str(expr.compile(compile_kwargs={"literal_binds": True}))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine():
    """Create an in-memory SQLite engine with all tables."""
    eng = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture()
def session(engine):
    """Provide a transactional session that rolls back after each test."""
    factory = sessionmaker(bind=engine)
    sess = factory()
    try:
        yield sess
    finally:
        sess.rollback()
        sess.close()


@pytest.fixture()
def sample_data(session: Session) -> dict[str, list]:
    """Seed the database with sample data for testing.

    Posts:
        1: alice, published, priority 1, comment 1 (visible, by bob), tag python
        2: alice, draft, priority 5, comment 2 (hidden, by carol), tag internal
        3: bob, published, priority 3, comments 3 (visible, by alice) and 4 (hidden, by bob)
        4: carol, published, priority 2, no comments
    """
    acme = Organization(id=1, name="Acme Corp")
    globex = Organization(id=2, name="Globex")
    session.add_all([acme, globex])

    alice = User(id=1, name="Alice", role="admin", org_id=1)
    bob = User(id=2, name="Bob", role="editor", org_id=1)
    carol = User(id=3, name="Carol", role="viewer", org_id=2)
    session.add_all([alice, bob, carol])

    tag_public = Tag(id=1, name="python", visibility="public")
    tag_private = Tag(id=2, name="internal", visibility="private")
    session.add_all([tag_public, tag_private])

    post1 = Post(id=1, title="Public Post", is_published=True, priority=1, author_id=1)
    post2 = Post(id=2, title="Draft Post", is_published=False, priority=5, author_id=1)
    post3 = Post(id=3, title="Bob's Post", is_published=True, priority=3, author_id=2)
    post4 = Post(id=4, title="Carol's Post", is_published=True, priority=2, author_id=3)
    post1.tags.append(tag_public)
    post2.tags.append(tag_private)
    session.add_all([post1, post2, post3, post4])

    comments = [
        Comment(id=1, body="nice", hidden=False, post_id=1, author_id=2),
        Comment(id=2, body="spam", hidden=True, post_id=2, author_id=3),
        Comment(id=3, body="agreed", hidden=False, post_id=3, author_id=1),
        Comment(id=4, body="spam", hidden=True, post_id=3, author_id=2),
    ]
    session.add_all(comments)

    session.flush()
    return {
        "users": [alice, bob, carol],
        "posts": [post1, post2, post3, post4],
        "comments": comments,
        "tags": [tag_public, tag_private],
        "organizations": [acme, globex],
    }
