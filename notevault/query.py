"""
Faceted note queries.

Every facet is optional and independent; an omitted facet means "no
constraint". Facets are ANDed together on a query scoped to one owner.
"""
from __future__ import annotations
import calendar
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, UTC
from typing import Optional
from sqlalchemy import exists, func
from sqlmodel import Session, select

from .models import Note, NoteLabel, UNTITLED

DEFAULT_SORT = "updated_desc"
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 50
MAX_PAGE = 100_000

SORT_KEYS = ("updated_asc", "updated_desc", "created_asc", "created_desc", "title_asc", "title_desc")
DATE_BUCKETS = ("all", "today", "week", "month", "year")
VISIBILITY_BUCKETS = ("all", "private", "public", "draft", "published")
ENCRYPTION_BUCKETS = ("all", "encrypted", "unencrypted")


@dataclass
class NoteFilters:
    search: Optional[str] = None
    category_id: Optional[int] = None
    label_ids: list[int] = field(default_factory=list)
    date: str = "all"
    visibility: str = "all"
    encryption: str = "all"
    include_drafts: bool = False
    sort: str = DEFAULT_SORT
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE

    def __post_init__(self) -> None:
        self.page = max(1, min(self.page, MAX_PAGE))
        self.limit = max(1, min(self.limit, MAX_PAGE_SIZE))
        if self.sort not in SORT_KEYS:
            self.sort = DEFAULT_SORT
        if self.search is not None:
            self.search = self.search.strip() or None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class NotePage:
    notes: list[Note]
    page: int
    limit: int
    total: int

    @property
    def has_more(self) -> bool:
        return (self.page - 1) * self.limit + self.limit < self.total

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def _months_back(moment: datetime, months: int) -> datetime:
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def date_lower_bound(bucket: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Lower bound on ``updated_at`` for a date bucket, in UTC.
    'today' starts at local midnight; 'all' and unknown buckets give None.
    """
    now = (now or datetime.now(UTC)).astimezone()  # local time
    if bucket == "today":
        bound = now.replace(hour=0, minute=0, second=0, microsecond=0)
    elif bucket == "week":
        bound = now - timedelta(days=7)
    elif bucket == "month":
        bound = _months_back(now, 1)
    elif bucket == "year":
        bound = _months_back(now, 12)
    else:
        return None
    return bound.astimezone(UTC)


def _order_by(sort: str):
    if sort.startswith("title"):
        column = func.lower(func.coalesce(func.nullif(Note.title, ""), UNTITLED))
    elif sort.startswith("created"):
        column = Note.created_at
    else:
        column = Note.updated_at
    if sort.endswith("_asc"):
        return column.asc(), Note.id.asc()
    return column.desc(), Note.id.desc()


def build_note_query(author_id: int, filters: NoteFilters, now: Optional[datetime] = None):
    """Owner-scoped, filtered, unordered and unpaginated note select."""
    stmt = select(Note).where(Note.author_id == author_id)

    if not filters.include_drafts:
        stmt = stmt.where(Note.is_draft == False)  # noqa: E712

    if filters.visibility == "private":
        stmt = stmt.where(Note.is_public == False)  # noqa: E712
    elif filters.visibility == "public":
        stmt = stmt.where(Note.is_public == True)  # noqa: E712
    elif filters.visibility == "draft":
        stmt = stmt.where(Note.is_draft == True)  # noqa: E712
    elif filters.visibility == "published":
        stmt = stmt.where(Note.is_draft == False)  # noqa: E712

    if filters.encryption != "all":
        stmt = stmt.where(Note.is_encrypted == (filters.encryption == "encrypted"))

    if filters.category_id is not None:
        stmt = stmt.where(Note.category_id == filters.category_id)

    if filters.search:
        stmt = stmt.where(
            Note.title.icontains(filters.search, autoescape=True)
            | Note.content.icontains(filters.search, autoescape=True)
        )

    bound = date_lower_bound(filters.date, now)
    if bound is not None:
        stmt = stmt.where(Note.updated_at >= bound)

    if filters.label_ids:
        # any-of: a note matches when it carries at least one requested label
        stmt = stmt.where(
            exists().where(NoteLabel.note_id == Note.id, NoteLabel.label_id.in_(filters.label_ids))
        )
    return stmt


def public_note_query(link_id: str):
    return select(Note).where(
        Note.public_link_id == link_id,
        Note.is_public == True,  # noqa: E712
        Note.is_draft == False,  # noqa: E712
    )


def fetch_note_page(session: Session, author_id: int, filters: NoteFilters, now: Optional[datetime] = None) -> NotePage:
    stmt = build_note_query(author_id, filters, now)
    total = session.exec(select(func.count()).select_from(stmt.subquery())).one()
    page_stmt = stmt.order_by(*_order_by(filters.sort)).offset(filters.offset).limit(filters.limit)
    notes = list(session.exec(page_stmt))
    return NotePage(notes=notes, page=filters.page, limit=filters.limit, total=total)
