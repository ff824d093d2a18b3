"""
Python client for the notevault HTTP API.

Holds the client-local state (token, API URL, sort preference, encryption
key), encrypts note content before it leaves the machine, and provides the
two behaviours an editor front-end needs: debounced autosave and paged
("infinite scroll") listing.
"""
from __future__ import annotations
import json
import logging
import threading
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Callable, Iterator, Optional
import httpx

from .crypto import ContentCipher, FileKeyProvider
from .errors import NoteVaultError
from .models import UNTITLED

logger = logging.getLogger(__name__)


class ApiError(NoteVaultError):
    """Non-2xx answer from the API."""

    def __init__(self, status_code: int, message: str, details: Optional[dict] = None):
        super().__init__(message, details)
        self.status_code = status_code

    def __str__(self) -> str:
        return f"{self.status_code}: {self.message}"


# ---------- Local state ----------
class LocalState:
    """JSON file of client settings plus the key file, both under ``home``."""

    STATE_FILE = "client.json"
    KEY_FILE = "encryption.key"

    def __init__(self, home: Path):
        self.home = home
        self.path = home / self.STATE_FILE

    def load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable client state at %s", self.path)
            return {}

    def _update(self, **values: Any) -> None:
        data = self.load()
        for key, value in values.items():
            if value is None:
                data.pop(key, None)
            else:
                data[key] = value
        self.home.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    @property
    def token(self) -> Optional[str]:
        return self.load().get("token")

    @property
    def api_url(self) -> Optional[str]:
        return self.load().get("api_url")

    @property
    def sort_preference(self) -> Optional[str]:
        return self.load().get("sort")

    def login(self, token: str, api_url: Optional[str] = None) -> None:
        self._update(token=token, api_url=api_url)

    def remember_sort(self, sort: str) -> None:
        self._update(sort=sort)

    def key_provider(self) -> FileKeyProvider:
        return FileKeyProvider(self.home / self.KEY_FILE)

    def logout(self) -> None:
        """Forget the token and drop the encryption key."""
        self._update(token=None)
        self.key_provider().clear()


def _utc_naive(stamp: str) -> datetime:
    return datetime.fromisoformat(stamp).replace(tzinfo=None)


def autosaved_since_save(note: dict) -> bool:
    """True when the last autosave is newer than the last explicit save."""
    autosaved, updated = note.get("last_autosave"), note.get("updated_at")
    if not autosaved or not updated:
        return False
    # all timestamps are UTC; some serialisations drop the offset
    return _utc_naive(autosaved) > _utc_naive(updated)


# ---------- HTTP client ----------
def _facet_params(facets: dict[str, Any]) -> dict[str, Any]:
    params: dict[str, Any] = {}
    for key, value in facets.items():
        if value is None:
            continue
        if key == "labels":
            if not value:
                continue
            value = ",".join(str(v) for v in value)
        elif isinstance(value, bool):
            value = "true" if value else "false"
        params[key] = value
    return params


class NotesClient:
    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8000",
        token: Optional[str] = None,
        cipher: Optional[ContentCipher] = None,
        http: Optional[httpx.Client] = None,
        timeout: float = 10.0,
    ):
        self.token = token
        self.cipher = cipher
        self._http = http or httpx.Client(base_url=base_url, timeout=timeout)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "NotesClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _request(self, method: str, path: str, *, params: Optional[dict] = None, json: Optional[dict] = None) -> dict:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        response = self._http.request(method, path, params=params, json=json, headers=headers)
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if response.is_error:
            raise ApiError(response.status_code, payload.get("error") or response.reason_phrase, payload.get("details"))
        return payload

    # -- content encryption --
    def _content_fields(self, content: str, encrypt: bool) -> dict[str, Any]:
        if not encrypt:
            return {"content": content, "is_encrypted": False}
        if self.cipher is None:
            raise ValueError("Encryption requested but the client has no cipher")
        return {"content": "", "encrypted_content": self.cipher.encrypt(content), "is_encrypted": True}

    def _reveal(self, note: dict) -> dict:
        if note.get("is_encrypted") and note.get("encrypted_content") and self.cipher:
            note = dict(note, content=self.cipher.decrypt(note["encrypted_content"]))
        return note

    # -- notes --
    def list_notes(self, **facets: Any) -> dict:
        data = self._request("GET", "/api/notes", params=_facet_params(facets))
        data["notes"] = [self._reveal(n) for n in data["notes"]]
        return data

    def search_notes(self, q: str, **facets: Any) -> dict:
        data = self._request("GET", "/api/notes/search", params=_facet_params(dict(facets, q=q)))
        data["notes"] = [self._reveal(n) for n in data["notes"]]
        return data

    def get_note(self, identifier: int | str) -> dict:
        return self._reveal(self._request("GET", f"/api/notes/{identifier}")["note"])

    def create_note(
        self,
        title: str,
        content: str = "",
        *,
        encrypt: bool = False,
        is_public: bool = False,
        is_draft: bool = True,
        category_id: Optional[int] = None,
        label_ids: Optional[list[int]] = None,
    ) -> dict:
        body = {
            "title": title,
            "is_public": is_public,
            "is_draft": is_draft,
            "category_id": category_id,
            "label_ids": label_ids or [],
            **self._content_fields(content, encrypt),
        }
        return self._reveal(self._request("POST", "/api/notes", json=body)["note"])

    def update_note(
        self,
        note_id: int,
        *,
        content: Optional[str] = None,
        encrypt: bool = False,
        autosave: bool = False,
        **fields: Any,
    ) -> dict:
        """Send only the given fields; ``content`` is encrypted when ``encrypt``."""
        body = dict(fields)
        if content is not None:
            body.update(self._content_fields(content, encrypt))
        if autosave:
            body["is_autosave"] = True
        return self._reveal(self._request("PUT", f"/api/notes/{note_id}", json=body)["note"])

    def autosave(self, note_id: Optional[int], title: str, content: str, *, encrypt: bool = False) -> dict:
        body = {"id": note_id, "title": title, **self._content_fields(content, encrypt)}
        return self._reveal(self._request("POST", "/api/notes/autosave", json=body)["note"])

    def delete_note(self, note_id: int) -> None:
        self._request("DELETE", f"/api/notes/{note_id}")

    # -- categories --
    def list_categories(self) -> list[dict]:
        return self._request("GET", "/api/categories")["categories"]

    def create_category(self, name: str, description: Optional[str] = None, color: Optional[str] = None, icon: Optional[str] = None) -> dict:
        body = {"name": name, "description": description, "color": color, "icon": icon}
        return self._request("POST", "/api/categories", json=body)["category"]

    def update_category(self, category_id: int, **changes: Any) -> dict:
        return self._request("PUT", f"/api/categories/{category_id}", json=changes)["category"]

    def delete_category(self, category_id: int) -> None:
        self._request("DELETE", f"/api/categories/{category_id}")

    # -- labels --
    def list_labels(self) -> list[dict]:
        return self._request("GET", "/api/labels")["labels"]

    def create_label(self, name: str, color: Optional[str] = None) -> dict:
        return self._request("POST", "/api/labels", json={"name": name, "color": color})["label"]

    def update_label(self, label_id: int, **changes: Any) -> dict:
        return self._request("PUT", f"/api/labels/{label_id}", json=changes)["label"]

    def delete_label(self, label_id: int) -> None:
        self._request("DELETE", f"/api/labels/{label_id}")


# ---------- Autosave ----------
class Autosaver:
    """
    Debounced autosave.

    Each ``edit`` restarts the inactivity timer, so a burst of edits collapses
    into one call carrying the last edit. Failures are logged and swallowed;
    an explicit save is the caller's job and must surface its own errors.
    """

    def __init__(
        self,
        client: NotesClient,
        *,
        delay: float = 2.0,
        note_id: Optional[int] = None,
        encrypt: bool = False,
        timer_factory: Callable[[float, Callable[[], None]], Any] = threading.Timer,
    ):
        self.client = client
        self.delay = delay
        self.note_id = note_id
        self.encrypt = encrypt
        self.last_saved_at: Optional[datetime] = None
        self.last_error: Optional[Exception] = None
        self._timer_factory = timer_factory
        self._timer = None
        self._pending: Optional[tuple[str, str]] = None
        self._lock = threading.Lock()
        self._save_lock = threading.Lock()

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def edit(self, title: str, content: str) -> None:
        with self._lock:
            self._pending = (title, content)
            if self._timer is not None:
                self._timer.cancel()
            self._timer = self._timer_factory(self.delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _take_pending(self) -> Optional[tuple[str, str]]:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            pending, self._pending, self._timer = self._pending, None, None
            return pending

    def _fire(self) -> None:
        pending = self._take_pending()
        if pending:
            self._save(*pending)

    def flush(self) -> Optional[dict]:
        """Save a pending edit right away."""
        pending = self._take_pending()
        return self._save(*pending) if pending else None

    def cancel(self) -> None:
        self._take_pending()

    def _save(self, title: str, content: str) -> Optional[dict]:
        if not title.strip() and not content.strip():
            return None
        with self._save_lock:
            try:
                note = self.client.autosave(self.note_id, title or UNTITLED, content, encrypt=self.encrypt)
            except (ApiError, httpx.HTTPError, ValueError) as e:
                self.last_error = e
                logger.warning("Autosave failed: %s", e)
                return None
            if self.note_id is None:
                self.note_id = note["id"]
            self.last_saved_at = datetime.now(UTC)
            self.last_error = None
            return note


# ---------- Paging ----------
class NotePager:
    """
    Walks the note listing page by page. ``fetch_more`` is a no-op while a
    fetch is in flight or when the server reported no more pages.
    """

    def __init__(self, client: NotesClient, *, limit: int = 20, **facets: Any):
        self.client = client
        self.limit = limit
        self.facets = facets
        self.notes: list[dict] = []
        self.page = 0
        self.total: Optional[int] = None
        self.has_more = True
        self.is_fetching = False
        self._lock = threading.Lock()

    def fetch_more(self) -> list[dict]:
        with self._lock:
            if self.is_fetching or not self.has_more:
                return []
            self.is_fetching = True
        try:
            data = self.client.list_notes(page=self.page + 1, limit=self.limit, **self.facets)
        finally:
            with self._lock:
                self.is_fetching = False
        batch = data["notes"]
        pagination = data["pagination"]
        self.page = pagination["page"]
        self.total = pagination["total"]
        self.has_more = pagination["hasMore"]
        self.notes.extend(batch)
        return batch

    def __iter__(self) -> Iterator[dict]:
        yield from list(self.notes)
        while self.has_more:
            batch = self.fetch_more()
            if not batch:
                break
            yield from batch
