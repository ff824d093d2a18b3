from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .auth import get_authorization, get_current_user, optional_user
from .config import get_settings
from .db import init_db
from .errors import AuthenticationError, NoteVaultError, ValidationFailed
from .logging_setup import setup_logging
from .models import User
from .query import DEFAULT_PAGE_SIZE, DEFAULT_SORT, MAX_PAGE, NoteFilters
from .schemas import (
    AutosaveIn, CategoryIn, CategoryList, CategoryMessage, CategoryOut, LabelIn, LabelList,
    LabelMessage, LabelOut, Message, NoteCreate, NoteEnvelope, NoteList, NoteMessage, NoteUpdate,
    Pagination, SearchResult,
)
from .services import (
    autosave_note, create_note, delete_note, find_public_note, get_owned_note, list_notes,
    render_note, render_notes, update_note,
)
from .taxonomy import (
    create_category, create_label, delete_category, delete_label, list_categories, list_labels,
    seed_default_categories, update_category, update_label,
)

logger = logging.getLogger(__name__)

SORT_PATTERN = "^(updated|created|title)_(asc|desc)$"
DATE_PATTERN = "^(all|today|week|month|year)$"
VISIBILITY_PATTERN = "^(all|private|public|draft|published)$"
ENCRYPTION_PATTERN = "^(all|encrypted|unencrypted)$"


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file)
    for warning in settings.validate():
        logger.warning(warning)
    init_db()
    seed_default_categories()
    logger.info("Database ready at %s", settings.db_path)
    yield


app = FastAPI(title="notevault API", lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])


# ---------- Error handling ----------
@app.exception_handler(NoteVaultError)
async def _domain_error(request: Request, exc: NoteVaultError):
    body = {"error": exc.message}
    if exc.details:
        body["details"] = exc.details
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return JSONResponse(body, status_code=exc.status_code, headers=headers)


@app.exception_handler(RequestValidationError)
async def _request_error(request: Request, exc: RequestValidationError):
    details = {}
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"] if part not in ("body", "query", "path"))
        details[field or "request"] = err["msg"]
    return JSONResponse({"error": "Validation failed", "details": details}, status_code=400)


@app.exception_handler(SQLAlchemyError)
async def _store_error(request: Request, exc: SQLAlchemyError):
    logger.exception("Store error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


@app.exception_handler(Exception)
async def _unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


# ---------- Helpers ----------
def _label_ids(raw: Optional[str]) -> list[int]:
    if not raw:
        return []
    try:
        return [int(part) for part in raw.split(",") if part.strip()]
    except ValueError:
        raise ValidationFailed({"labels": "Expected comma separated label ids"}) from None


def _filters(
    search: Optional[str],
    category: Optional[int],
    labels: Optional[str],
    date: str,
    visibility: str,
    encryption: str,
    drafts: bool,
    sort: str,
    page: int,
    limit: int,
) -> NoteFilters:
    return NoteFilters(
        search=search, category_id=category, label_ids=_label_ids(labels),
        date=date, visibility=visibility, encryption=encryption,
        include_drafts=drafts, sort=sort, page=page, limit=limit,
    )


# ---------- Notes ----------
@app.get("/api/notes", response_model=NoteList)
def api_list_notes(
    search: Optional[str] = None,
    category: Optional[int] = None,
    labels: Optional[str] = Query(None, description="comma separated label ids"),
    date: str = Query("all", pattern=DATE_PATTERN),
    visibility: str = Query("all", pattern=VISIBILITY_PATTERN),
    encryption: str = Query("all", pattern=ENCRYPTION_PATTERN),
    drafts: bool = False,
    sort: str = Query(DEFAULT_SORT, pattern=SORT_PATTERN),
    page: int = Query(1, ge=1, le=MAX_PAGE),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    user: User = Depends(get_current_user),
):
    filters = _filters(search, category, labels, date, visibility, encryption, drafts, sort, page, limit)
    result = list_notes(user.id, filters)
    return NoteList(
        notes=render_notes(result.notes),
        pagination=Pagination(
            page=result.page, limit=result.limit, total=result.total,
            hasMore=result.has_more, totalPages=result.total_pages,
        ),
    )


@app.post("/api/notes", response_model=NoteMessage, status_code=201)
def api_create_note(payload: NoteCreate, user: User = Depends(get_current_user)):
    n = create_note(
        user.id, payload.title, payload.content,
        encrypted_content=payload.encrypted_content, is_encrypted=payload.is_encrypted,
        is_public=payload.is_public, is_draft=payload.is_draft,
        category_id=payload.category_id, label_ids=payload.label_ids,
    )
    return NoteMessage(message="Note created successfully", note=render_note(n))


@app.get("/api/notes/search", response_model=SearchResult)
def api_search_notes(
    q: Optional[str] = None,
    category: Optional[int] = None,
    labels: Optional[str] = Query(None, description="comma separated label ids"),
    date: str = Query("all", pattern=DATE_PATTERN),
    visibility: str = Query("all", pattern=VISIBILITY_PATTERN),
    encryption: str = Query("all", pattern=ENCRYPTION_PATTERN),
    drafts: bool = False,
    sort: str = Query(DEFAULT_SORT, pattern=SORT_PATTERN),
    page: int = Query(1, ge=1, le=MAX_PAGE),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    user: User = Depends(get_current_user),
):
    filters = _filters(q, category, labels, date, visibility, encryption, drafts, sort, page, limit)
    result = list_notes(user.id, filters)
    return SearchResult(
        notes=render_notes(result.notes), total=result.total,
        page=result.page, limit=result.limit, hasMore=result.has_more,
    )


@app.post("/api/notes/autosave", response_model=NoteMessage)
def api_autosave(payload: AutosaveIn, user: User = Depends(get_current_user)):
    n = autosave_note(
        user.id, payload.id,
        title=payload.title, content=payload.content,
        encrypted_content=payload.encrypted_content, is_encrypted=payload.is_encrypted,
    )
    return NoteMessage(message="Note autosaved", note=render_note(n))


@app.get("/api/notes/{identifier}", response_model=NoteEnvelope)
def api_get_note(identifier: str, authorization: Optional[str] = Depends(get_authorization)):
    # public links resolve without reading the token
    n = find_public_note(identifier)
    if n is None:
        user = optional_user(authorization)
        n = get_owned_note(identifier, user.id if user else None)
    return NoteEnvelope(note=render_note(n))


@app.put("/api/notes/{note_id}", response_model=NoteMessage)
def api_update_note(note_id: int, payload: NoteUpdate, user: User = Depends(get_current_user)):
    n = update_note(user.id, note_id, payload.changes(), autosave=payload.is_autosave)
    message = "Note autosaved" if payload.is_autosave else "Note updated successfully"
    return NoteMessage(message=message, note=render_note(n))


@app.delete("/api/notes/{note_id}", response_model=Message)
def api_delete_note(note_id: int, user: User = Depends(get_current_user)):
    delete_note(user.id, note_id)
    return Message(message="Note deleted successfully")


# ---------- Categories ----------
@app.get("/api/categories", response_model=CategoryList)
def api_list_categories(user: User = Depends(get_current_user)):
    return CategoryList(categories=[CategoryOut.model_validate(c) for c in list_categories(user.id)])


@app.post("/api/categories", response_model=CategoryMessage, status_code=201)
def api_create_category(payload: CategoryIn, user: User = Depends(get_current_user)):
    c = create_category(user.id, payload.name, payload.description, payload.color, payload.icon)
    return CategoryMessage(message="Category created successfully", category=CategoryOut.model_validate(c))


@app.put("/api/categories/{category_id}", response_model=CategoryMessage)
def api_update_category(category_id: int, payload: CategoryIn, user: User = Depends(get_current_user)):
    c = update_category(user.id, category_id, payload.model_dump(exclude_unset=True))
    return CategoryMessage(message="Category updated successfully", category=CategoryOut.model_validate(c))


@app.delete("/api/categories/{category_id}", response_model=Message)
def api_delete_category(category_id: int, user: User = Depends(get_current_user)):
    delete_category(user.id, category_id)
    return Message(message="Category deleted successfully")


# ---------- Labels ----------
@app.get("/api/labels", response_model=LabelList)
def api_list_labels(user: User = Depends(get_current_user)):
    return LabelList(labels=[LabelOut.model_validate(label) for label in list_labels(user.id)])


@app.post("/api/labels", response_model=LabelMessage, status_code=201)
def api_create_label(payload: LabelIn, user: User = Depends(get_current_user)):
    label = create_label(user.id, payload.name, payload.color)
    return LabelMessage(message="Label created successfully", label=LabelOut.model_validate(label))


@app.put("/api/labels/{label_id}", response_model=LabelMessage)
def api_update_label(label_id: int, payload: LabelIn, user: User = Depends(get_current_user)):
    label = update_label(user.id, label_id, payload.model_dump(exclude_unset=True))
    return LabelMessage(message="Label updated successfully", label=LabelOut.model_validate(label))


@app.delete("/api/labels/{label_id}", response_model=Message)
def api_delete_label(label_id: int, user: User = Depends(get_current_user)):
    delete_label(user.id, label_id)
    return Message(message="Label deleted successfully")
