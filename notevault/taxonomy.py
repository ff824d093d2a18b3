"""
Categories and labels.

Both are owned by a user and unique by name per owner. Categories can also be
shared defaults (no owner, read-only); a category cannot be deleted while a
note points at it. Deleting a label drops its note associations.
"""
from __future__ import annotations
import logging
from typing import Any, Mapping, Optional
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, or_, select

from .db import session_scope
from .errors import Conflict, NotFound, PermissionDenied, ValidationFailed
from .models import (
    Category, Label, Note, NoteLabel,
    DEFAULT_CATEGORY_COLOR, DEFAULT_CATEGORY_ICON, DEFAULT_LABEL_COLOR, utcnow,
)
from .validation import CATEGORY_NAME_MAX, LABEL_NAME_MAX, sanitize_input, validate_name

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    ("General", "Everything else", "#6b7280", "folder"),
    ("Work", "Work related notes", "#3b82f6", "briefcase"),
    ("Personal", "Personal notes", "#ec4899", "user"),
    ("Ideas", "Ideas worth keeping", "#f59e0b", "lightbulb"),
]


def seed_default_categories() -> int:
    """Insert the shared default categories once. Returns how many were added."""
    with session_scope() as s:
        existing = set(s.exec(select(Category.name).where(Category.is_default == True)))  # noqa: E712
        added = 0
        for name, description, color, icon in DEFAULT_CATEGORIES:
            if name in existing:
                continue
            s.add(Category(name=name, description=description, color=color, icon=icon, is_default=True))
            added += 1
    if added:
        logger.info("Seeded %d default categories", added)
    return added


def _flush_unique(s: Session, message: str) -> None:
    """Flush, turning a concurrent duplicate name into a Conflict."""
    try:
        s.flush()
    except IntegrityError:
        raise Conflict(message) from None


def _clean_name(name: Optional[str], *, limit: int, kind: str) -> str:
    clean = sanitize_input(name)
    errors = validate_name(clean, limit=limit, kind=kind)
    if errors:
        raise ValidationFailed(errors)
    return clean


# ---------- Categories ----------
def list_categories(user_id: int) -> list[Category]:
    with session_scope() as s:
        stmt = (
            select(Category)
            .where(or_(Category.author_id == user_id, Category.is_default == True))  # noqa: E712
            .order_by(Category.name.asc())
        )
        return list(s.exec(stmt))


def category_visible_to(s: Session, user_id: int, category_id: int) -> Optional[Category]:
    stmt = select(Category).where(
        Category.id == category_id,
        or_(Category.author_id == user_id, Category.is_default == True),  # noqa: E712
    )
    return s.exec(stmt).first()


def _category_name_taken(s: Session, user_id: int, name: str, exclude_id: Optional[int] = None) -> bool:
    stmt = select(Category.id).where(Category.author_id == user_id, Category.name == name)
    if exclude_id is not None:
        stmt = stmt.where(Category.id != exclude_id)
    return s.exec(stmt).first() is not None


def _mutable_category(s: Session, user_id: int, category_id: int, action: str) -> Category:
    category = category_visible_to(s, user_id, category_id)
    if not category:
        raise NotFound("Category not found")
    if category.is_default:
        raise PermissionDenied(f"Cannot {action} default categories")
    return category


def create_category(
    user_id: int,
    name: Optional[str],
    description: Optional[str] = None,
    color: Optional[str] = None,
    icon: Optional[str] = None,
) -> Category:
    clean = _clean_name(name, limit=CATEGORY_NAME_MAX, kind="Category")
    with session_scope() as s:
        if _category_name_taken(s, user_id, clean):
            raise Conflict("Category name already exists")
        category = Category(
            name=clean,
            description=sanitize_input(description),
            color=color or DEFAULT_CATEGORY_COLOR,
            icon=icon or DEFAULT_CATEGORY_ICON,
            author_id=user_id,
        )
        s.add(category)
        _flush_unique(s, "Category name already exists")
        s.refresh(category)
        return category


def update_category(user_id: int, category_id: int, changes: Mapping[str, Any]) -> Category:
    with session_scope() as s:
        category = _mutable_category(s, user_id, category_id, "modify")
        if "name" in changes:
            clean = _clean_name(changes["name"], limit=CATEGORY_NAME_MAX, kind="Category")
            if _category_name_taken(s, user_id, clean, exclude_id=category_id):
                raise Conflict("Category name already exists")
            category.name = clean
        if "description" in changes:
            category.description = sanitize_input(changes["description"])
        if "color" in changes:
            category.color = changes["color"] or DEFAULT_CATEGORY_COLOR
        if "icon" in changes:
            category.icon = changes["icon"] or DEFAULT_CATEGORY_ICON
        category.updated_at = utcnow()
        s.add(category)
        _flush_unique(s, "Category name already exists")
        s.refresh(category)
        return category


def delete_category(user_id: int, category_id: int) -> None:
    with session_scope() as s:
        category = _mutable_category(s, user_id, category_id, "delete")
        in_use = s.exec(select(Note.id).where(Note.category_id == category_id).limit(1)).first()
        if in_use is not None:
            raise Conflict("Cannot delete category that is being used by notes")
        s.delete(category)


# ---------- Labels ----------
def list_labels(user_id: int) -> list[Label]:
    with session_scope() as s:
        stmt = select(Label).where(Label.author_id == user_id).order_by(Label.name.asc())
        return list(s.exec(stmt))


def _label_name_taken(s: Session, user_id: int, name: str, exclude_id: Optional[int] = None) -> bool:
    stmt = select(Label.id).where(Label.author_id == user_id, Label.name == name)
    if exclude_id is not None:
        stmt = stmt.where(Label.id != exclude_id)
    return s.exec(stmt).first() is not None


def _owned_label(s: Session, user_id: int, label_id: int) -> Label:
    label = s.exec(select(Label).where(Label.id == label_id, Label.author_id == user_id)).first()
    if not label:
        raise NotFound("Label not found")
    return label


def create_label(user_id: int, name: Optional[str], color: Optional[str] = None) -> Label:
    clean = _clean_name(name, limit=LABEL_NAME_MAX, kind="Label")
    with session_scope() as s:
        if _label_name_taken(s, user_id, clean):
            raise Conflict("Label name already exists")
        label = Label(name=clean, color=color or DEFAULT_LABEL_COLOR, author_id=user_id)
        s.add(label)
        _flush_unique(s, "Label name already exists")
        s.refresh(label)
        return label


def update_label(user_id: int, label_id: int, changes: Mapping[str, Any]) -> Label:
    with session_scope() as s:
        label = _owned_label(s, user_id, label_id)
        if "name" in changes:
            clean = _clean_name(changes["name"], limit=LABEL_NAME_MAX, kind="Label")
            if _label_name_taken(s, user_id, clean, exclude_id=label_id):
                raise Conflict("Label name already exists")
            label.name = clean
        if "color" in changes:
            label.color = changes["color"] or DEFAULT_LABEL_COLOR
        s.add(label)
        _flush_unique(s, "Label name already exists")
        s.refresh(label)
        return label


def delete_label(user_id: int, label_id: int) -> None:
    with session_scope() as s:
        label = _owned_label(s, user_id, label_id)
        for link in s.exec(select(NoteLabel).where(NoteLabel.label_id == label_id)).all():
            s.delete(link)
        s.flush()
        s.delete(label)
