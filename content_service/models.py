"""
Database models for content service.

This module defines the SQLAlchemy tables for authors, posts and edit
suggestions. The repositories work on the Core tables (``Model.__table__``)
so one generic implementation can serve every entity.
"""

from typing import Any

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

from .domain.entities import EditStatus

Base: Any = declarative_base()

# SQLite only autoincrements INTEGER PRIMARY KEY columns
IdType = BigInteger().with_variant(Integer(), "sqlite")


class AuthorRow(Base):
    """
    Author account.

    Attributes:
        id: Primary key identifier
        name: Display name
        email: Unique login email
        password_hash: bcrypt hash of the password, never exposed
    """

    __tablename__ = "authors"

    id = Column(IdType, primary_key=True, autoincrement=True)
    name = Column(String(128), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)


class PostRow(Base):
    """
    Published post.

    Attributes:
        id: Primary key identifier
        title: Post title
        content: Body content
        weight: Ordering weight, heavier posts list first
        created_at: Timestamp of creation
        updated_at: Timestamp of last update
    """

    __tablename__ = "posts"

    id = Column(IdType, primary_key=True, autoincrement=True)
    title = Column(String(256), nullable=False)
    content = Column(Text, nullable=False)
    weight = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_posts_weight", "weight"),)


class EditRow(Base):
    """
    Edit suggestion made by an author for a post.

    Attributes:
        id: Primary key identifier
        editor_id: Author who suggested the edit
        post_id: Post the edit targets
        new_content: Proposed replacement content
        status: PENDING, ACCEPTED or REJECTED
        created_at: Timestamp of creation
        updated_at: Timestamp of last update
    """

    __tablename__ = "edits"

    id = Column(IdType, primary_key=True, autoincrement=True)
    editor_id = Column(
        IdType, ForeignKey("authors.id", ondelete="RESTRICT"), nullable=False
    )
    post_id = Column(IdType, ForeignKey("posts.id", ondelete="RESTRICT"), nullable=False)
    new_content = Column(Text, nullable=False)
    status = Column(
        Enum(EditStatus, name="edit_status"),
        nullable=False,
        default=EditStatus.PENDING,
    )
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_edits_post_status", "post_id", "status"),
        Index("idx_edits_editor", "editor_id"),
    )
