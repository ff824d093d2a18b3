from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


# ---------- Requests ----------
class NoteCreate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    encrypted_content: Optional[str] = None
    is_encrypted: bool = False
    is_public: bool = False
    is_draft: bool = True
    category_id: Optional[int] = None
    label_ids: list[int] = Field(default_factory=list)


class NoteUpdate(BaseModel):
    """Merge-patch: only fields present in the request body are applied."""
    title: Optional[str] = None
    content: Optional[str] = None
    encrypted_content: Optional[str] = None
    is_encrypted: Optional[bool] = None
    is_public: Optional[bool] = None
    is_draft: Optional[bool] = None
    category_id: Optional[int] = None
    label_ids: Optional[list[int]] = None
    is_autosave: bool = False

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True, exclude={"is_autosave"})


class AutosaveIn(BaseModel):
    id: Optional[int] = None
    title: Optional[str] = None
    content: Optional[str] = None
    encrypted_content: Optional[str] = None
    is_encrypted: bool = False


class CategoryIn(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None


class LabelIn(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None


# ---------- Responses ----------
class CategoryRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    color: str
    icon: str


class LabelRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    color: str


class AuthorRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    email: str


class NoteOut(BaseModel):
    id: int
    title: str
    content: str
    encrypted_content: Optional[str]
    is_encrypted: bool
    is_public: bool
    is_draft: bool
    public_link_id: Optional[str]
    category_id: Optional[int]
    created_at: datetime
    updated_at: datetime
    last_autosave: Optional[datetime]
    category: Optional[CategoryRef] = None
    labels: list[LabelRef] = Field(default_factory=list)
    author: Optional[AuthorRef] = None


class NoteEnvelope(BaseModel):
    note: NoteOut


class NoteMessage(BaseModel):
    message: str
    note: NoteOut


class Message(BaseModel):
    message: str


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    hasMore: bool
    totalPages: int


class NoteList(BaseModel):
    notes: list[NoteOut]
    pagination: Pagination


class SearchResult(BaseModel):
    notes: list[NoteOut]
    total: int
    page: int
    limit: int
    hasMore: bool


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    description: str
    color: str
    icon: str
    is_default: bool
    author_id: Optional[int]
    created_at: datetime
    updated_at: datetime


class CategoryList(BaseModel):
    categories: list[CategoryOut]


class CategoryMessage(BaseModel):
    message: str
    category: CategoryOut


class LabelOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    color: str
    author_id: int
    created_at: datetime


class LabelList(BaseModel):
    labels: list[LabelOut]


class LabelMessage(BaseModel):
    message: str
    label: LabelOut
