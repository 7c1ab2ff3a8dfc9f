"""
RestGate Backend — Post & Comment SQLAlchemy Models
===================================================

What:  ORM models for the resources exposed through the CRUD routes.
Why:   The model stores translate count/find/create/update/delete into
       queries against these tables.
How:   Inherits from `Base`; generic SQLAlchemy types so the same models run
       on PostgreSQL in production and SQLite in tests.

Table Design:
    - String UUID primary keys: path ids arrive as strings, no conversion needed,
      and non-sequential ids cannot be enumerated.
    - created_at / updated_at: timezone-aware UTC, set by the application.
    - comments.post_id: foreign key with ON DELETE CASCADE, so deleting a post
      through the API does not leave orphaned comments on PostgreSQL.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from restgate.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Post(Base):
    """
    A published or draft article.

    Query Patterns:
        - List: ORDER BY <sortBy> LIMIT/OFFSET, optionally filtered by any column
        - Get single: WHERE id = :id (primary key)
    """

    __tablename__ = "posts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    # Why TEXT: no artificial length limit on the article body
    content: Mapped[str] = mapped_column(Text, nullable=False)

    published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Free-form reference to the authoring user; not enforced as a foreign key
    # so posts can be imported before their authors exist.
    author_id: Mapped[str | None] = mapped_column(String(36), nullable=True, default=None)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        Index("idx_posts_created_at", created_at.desc()),
    )

    def __repr__(self) -> str:
        return f"<Post(id={self.id}, title='{self.title}', published={self.published})>"


class Comment(Base):
    """A reader comment attached to a post."""

    __tablename__ = "comments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)

    post_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )

    body: Mapped[str] = mapped_column(Text, nullable=False)

    author_name: Mapped[str | None] = mapped_column(String(120), nullable=True, default=None)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        Index("idx_comments_post_id", "post_id"),
    )

    def __repr__(self) -> str:
        return f"<Comment(id={self.id}, post_id={self.post_id})>"
