from __future__ import annotations
import logging
from typing import Any, Iterable, Mapping, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from .db import session_scope
from .errors import NotFound, ValidationFailed
from .links import next_public_link_id
from .models import Category, Label, Note, NoteLabel, User, UNTITLED, utcnow
from .query import NoteFilters, NotePage, fetch_note_page, public_note_query
from .schemas import AuthorRef, CategoryRef, LabelRef, NoteOut
from .taxonomy import category_visible_to
from .validation import sanitize_input, validate_note

logger = logging.getLogger(__name__)

# fields an update may explicitly null out
_NULLABLE_FIELDS = {"category_id", "encrypted_content"}


def _owned_note(s: Session, author_id: int, note_id: int) -> Note:
    note = s.exec(select(Note).where(Note.id == note_id, Note.author_id == author_id)).first()
    if not note:
        raise NotFound("Note not found")
    return note


def _check_category(s: Session, author_id: int, category_id: Optional[int]) -> None:
    if category_id is not None and not category_visible_to(s, author_id, category_id):
        raise ValidationFailed({"category_id": "Unknown category"})


def _encryption_fields(content: str, encrypted_content: Optional[str], is_encrypted: bool) -> tuple[str, Optional[str]]:
    """(content, encrypted_content) honouring: encrypted notes keep ciphertext only."""
    if is_encrypted:
        if not encrypted_content:
            raise ValidationFailed({"encrypted_content": "Encrypted notes need ciphertext"})
        return "", encrypted_content
    return content, None


def _assign_labels(author_id: int, note_id: int, label_ids: Iterable[int], *, replace: bool) -> None:
    """
    Attach labels to a note in a unit of work of its own.

    Best effort: the note write has already been committed, so a failure here
    is logged and the note is left with whatever labels it had.
    """
    wanted = list(dict.fromkeys(label_ids))
    try:
        with session_scope() as s:
            owned: set[int] = set()
            if wanted:
                owned = set(s.exec(select(Label.id).where(Label.author_id == author_id, Label.id.in_(wanted))))
            skipped = [label_id for label_id in wanted if label_id not in owned]
            if skipped:
                logger.warning("Skipping labels %s not owned by user %s", skipped, author_id)

            existing = s.exec(select(NoteLabel).where(NoteLabel.note_id == note_id)).all()
            current = {link.label_id for link in existing}
            if replace:
                for link in existing:
                    s.delete(link)
                s.flush()
                current = set()
            for label_id in wanted:
                if label_id in owned and label_id not in current:
                    s.add(NoteLabel(note_id=note_id, label_id=label_id))
    except SQLAlchemyError:
        logger.exception("Label assignment failed for note %s", note_id)


def create_note(
    author_id: int,
    title: Optional[str],
    content: Optional[str] = "",
    *,
    encrypted_content: Optional[str] = None,
    is_encrypted: bool = False,
    is_public: bool = False,
    is_draft: bool = True,
    category_id: Optional[int] = None,
    label_ids: Optional[Iterable[int]] = None,
) -> Note:
    title = sanitize_input(title)
    content = sanitize_input(content)
    errors = validate_note(title, content)
    if errors:
        raise ValidationFailed(errors)
    content, encrypted_content = _encryption_fields(content, encrypted_content, is_encrypted)

    with session_scope() as s:
        _check_category(s, author_id, category_id)
        note = Note(
            title=title,
            content=content,
            encrypted_content=encrypted_content,
            is_encrypted=is_encrypted,
            is_public=is_public,
            is_draft=is_draft,
            public_link_id=next_public_link_id(None, is_public, is_draft),
            category_id=category_id,
            author_id=author_id,
        )
        s.add(note)
        s.flush()
        s.refresh(note)

    if label_ids:
        _assign_labels(author_id, note.id, label_ids, replace=False)
    return note


def find_public_note(link_id: str) -> Optional[Note]:
    """Published public note behind ``link_id``; no identity involved."""
    with session_scope() as s:
        return s.exec(public_note_query(str(link_id))).first()


def get_owned_note(identifier: int | str, user_id: Optional[int]) -> Note:
    """Note by numeric id for its owner. Missing and not-yours are the same NotFound."""
    note = None
    if user_id is not None and str(identifier).isdigit():
        with session_scope() as s:
            note = s.exec(select(Note).where(Note.id == int(identifier), Note.author_id == user_id)).first()
    if note is None:
        raise NotFound("Note not found")
    return note


def get_note(identifier: int | str, user_id: Optional[int] = None) -> Note:
    """Resolve a public link first (anyone may read those), then an owned id."""
    return find_public_note(str(identifier)) or get_owned_note(identifier, user_id)


def update_note(author_id: int, note_id: int, changes: Mapping[str, Any], *, autosave: bool = False) -> Note:
    """
    Apply a merge-patch to an owned note. Keys absent from ``changes`` are left
    alone. The public link is recomputed whenever a visibility flag is
    supplied, taking the stored value for the other one. ``label_ids``, when
    present, replaces the label set afterwards.
    """
    changes = dict(changes)
    label_ids = changes.pop("label_ids", None)
    changes = {k: v for k, v in changes.items() if v is not None or k in _NULLABLE_FIELDS}

    with session_scope() as s:
        note = _owned_note(s, author_id, note_id)

        if "title" in changes:
            changes["title"] = sanitize_input(changes["title"])
        if "content" in changes:
            changes["content"] = sanitize_input(changes["content"])
        errors = validate_note(changes.get("title", note.title), changes.get("content", note.content))
        if errors:
            raise ValidationFailed(errors)
        if "category_id" in changes:
            _check_category(s, author_id, changes["category_id"])

        if changes.keys() & {"is_public", "is_draft"}:
            note.public_link_id = next_public_link_id(
                note.public_link_id,
                changes.get("is_public", note.is_public),
                changes.get("is_draft", note.is_draft),
            )

        for field in ("title", "is_public", "is_draft", "category_id"):
            if field in changes:
                setattr(note, field, changes[field])

        if changes.keys() & {"content", "encrypted_content", "is_encrypted"}:
            is_encrypted = changes.get("is_encrypted", note.is_encrypted)
            note.content, note.encrypted_content = _encryption_fields(
                changes.get("content", note.content),
                changes.get("encrypted_content", note.encrypted_content),
                is_encrypted,
            )
            note.is_encrypted = is_encrypted

        if autosave:
            note.last_autosave = utcnow()
        else:
            note.touch()
        s.add(note)
        s.flush()
        s.refresh(note)

    if label_ids is not None:
        _assign_labels(author_id, note_id, label_ids, replace=True)
    return note


def autosave_note(
    author_id: int,
    note_id: Optional[int] = None,
    *,
    title: Optional[str] = None,
    content: Optional[str] = None,
    encrypted_content: Optional[str] = None,
    is_encrypted: bool = False,
) -> Note:
    """
    Persist a draft snapshot. Without an id a new private draft is created and
    its id must be sent with later snapshots; with an id only the title, the
    content fields and last_autosave change. Visibility is never touched.
    """
    title = sanitize_input(title) or UNTITLED
    content = sanitize_input(content)
    errors = validate_note(title, content)
    if errors:
        raise ValidationFailed(errors)
    content, encrypted_content = _encryption_fields(content, encrypted_content, is_encrypted)
    now = utcnow()

    with session_scope() as s:
        if note_id is None:
            note = Note(
                title=title,
                content=content,
                encrypted_content=encrypted_content,
                is_encrypted=is_encrypted,
                is_draft=True,
                is_public=False,
                author_id=author_id,
                last_autosave=now,
            )
        else:
            note = _owned_note(s, author_id, note_id)
            note.title = title
            note.content = content
            note.encrypted_content = encrypted_content
            note.is_encrypted = is_encrypted
            note.last_autosave = now
        s.add(note)
        s.flush()
        s.refresh(note)

    if note_id is None:
        logger.info("Autosave created draft note %s for user %s", note.id, author_id)
    else:
        logger.debug("Autosaved note %s", note.id)
    return note


def delete_note(author_id: int, note_id: int) -> None:
    with session_scope() as s:
        note = _owned_note(s, author_id, note_id)
        for link in s.exec(select(NoteLabel).where(NoteLabel.note_id == note_id)).all():
            s.delete(link)
        s.flush()
        s.delete(note)


def list_notes(author_id: int, filters: Optional[NoteFilters] = None) -> NotePage:
    with session_scope() as s:
        return fetch_note_page(s, author_id, filters or NoteFilters())


def render_notes(notes: list[Note]) -> list[NoteOut]:
    """Attach category, labels and author to a batch of notes."""
    if not notes:
        return []
    note_ids = [n.id for n in notes]
    category_ids = {n.category_id for n in notes if n.category_id is not None}
    author_ids = {n.author_id for n in notes}

    with session_scope() as s:
        categories = {}
        if category_ids:
            categories = {c.id: c for c in s.exec(select(Category).where(Category.id.in_(category_ids)))}
        authors = {u.id: u for u in s.exec(select(User).where(User.id.in_(author_ids)))}
        labels_by_note: dict[int, list[Label]] = {}
        stmt = (
            select(NoteLabel.note_id, Label)
            .select_from(NoteLabel)
            .join(Label, Label.id == NoteLabel.label_id)
            .where(NoteLabel.note_id.in_(note_ids))
            .order_by(Label.name)
        )
        for note_id, label in s.exec(stmt):
            labels_by_note.setdefault(note_id, []).append(label)

    out = []
    for n in notes:
        category = categories.get(n.category_id)
        author = authors.get(n.author_id)
        out.append(NoteOut(
            id=n.id, title=n.title, content=n.content,
            encrypted_content=n.encrypted_content, is_encrypted=n.is_encrypted,
            is_public=n.is_public, is_draft=n.is_draft, public_link_id=n.public_link_id,
            category_id=n.category_id,
            created_at=n.created_at, updated_at=n.updated_at, last_autosave=n.last_autosave,
            category=CategoryRef.model_validate(category) if category else None,
            labels=[LabelRef.model_validate(label) for label in labels_by_note.get(n.id, [])],
            author=AuthorRef.model_validate(author) if author else None,
        ))
    return out


def render_note(note: Note) -> NoteOut:
    return render_notes([note])[0]
