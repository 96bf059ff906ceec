"""
Domain entities for authors, posts and edit suggestions.

Each entity has a full model (as stored), payload models for create and
update (server-assigned fields excluded), and where it differs a result
model that is safe to send to clients.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class EditStatus(str, Enum):
    """Review state of an edit suggestion."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self is not EditStatus.PENDING


class EntityModel(BaseModel):
    """Base for models built from database rows."""

    model_config = ConfigDict(from_attributes=True)


# Authors


class Author(EntityModel):
    """Complete author as stored. The password hash is never serialized."""

    id: int
    name: str
    email: str
    password_hash: str = Field(exclude=True, repr=False)


class AuthorForCreate(BaseModel):
    """Fields required to sign up an author."""

    name: str = Field(min_length=1, max_length=128)
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)


class AuthorForUpdate(BaseModel):
    """Fields an author may change."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    email: Optional[EmailStr] = None


class AuthorForResult(EntityModel):
    """Author as sent to clients."""

    id: int
    name: str
    email: str


# Posts

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1


class Post(EntityModel):
    id: int
    title: str
    content: str
    weight: int
    created_at: datetime
    updated_at: datetime


class PostForCreate(BaseModel):
    title: str = Field(min_length=1, max_length=256)
    content: str
    weight: int = Field(default=0, ge=INT32_MIN, le=INT32_MAX)


class PostForUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=256)
    content: Optional[str] = None
    weight: Optional[int] = Field(default=None, ge=INT32_MIN, le=INT32_MAX)


# Edits


class Edit(EntityModel):
    """Complete edit suggestion as stored."""

    id: int
    editor_id: int
    post_id: int
    new_content: str
    status: EditStatus
    created_at: datetime
    updated_at: datetime


class EditForCreate(BaseModel):
    """Fields required to store an edit suggestion."""

    post_id: int
    new_content: str = Field(min_length=1)
    editor_id: int


class EditForCreateRequestBody(BaseModel):
    """Fields a client sends to suggest an edit; the editor comes from the context."""

    post_id: int
    new_content: str = Field(min_length=1)


class EditForUpdate(BaseModel):
    """Fields that may change on an edit suggestion."""

    new_content: Optional[str] = Field(default=None, min_length=1)
    status: Optional[EditStatus] = None


class EditForResult(EntityModel):
    """Edit suggestion as sent to clients."""

    id: int
    post_id: int
    editor_id: int
    status: EditStatus
    new_content: str
    created_at: datetime
    updated_at: datetime
