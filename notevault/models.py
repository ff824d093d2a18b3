from __future__ import annotations
from datetime import datetime, UTC
from typing import Optional
from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

UNTITLED = "Untitled Note"
DEFAULT_CATEGORY_COLOR = "#6366f1"
DEFAULT_CATEGORY_ICON = "folder"
DEFAULT_LABEL_COLOR = "#10b981"


def utcnow() -> datetime:
    return datetime.now(UTC)


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(index=True, unique=True)
    created_at: datetime = Field(default_factory=utcnow)


class Category(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("author_id", "name", name="uq_category_author_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=100)
    description: str = ""
    color: str = DEFAULT_CATEGORY_COLOR
    icon: str = DEFAULT_CATEGORY_ICON
    # default categories have no owner and are visible to everyone
    is_default: bool = Field(default=False, index=True)
    author_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Label(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("author_id", "name", name="uq_label_author_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=50)
    color: str = DEFAULT_LABEL_COLOR
    author_id: int = Field(foreign_key="user.id", index=True)
    created_at: datetime = Field(default_factory=utcnow)


class NoteLabel(SQLModel, table=True):
    note_id: int = Field(foreign_key="note.id", primary_key=True)
    label_id: int = Field(foreign_key="label.id", primary_key=True)


class Note(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(max_length=500)
    content: str = ""
    # ciphertext lives here while is_encrypted; content is then empty
    encrypted_content: Optional[str] = None
    is_encrypted: bool = Field(default=False, index=True)
    is_public: bool = Field(default=False, index=True)
    is_draft: bool = Field(default=True, index=True)
    # present iff is_public and not is_draft
    public_link_id: Optional[str] = Field(default=None, unique=True, index=True)
    category_id: Optional[int] = Field(default=None, foreign_key="category.id", index=True)
    author_id: int = Field(foreign_key="user.id", index=True)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, index=True)
    last_autosave: Optional[datetime] = None

    def touch(self) -> None:
        self.updated_at = utcnow()
