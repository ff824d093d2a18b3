from __future__ import annotations
from typing import Optional
import re

TITLE_MAX = 500
CONTENT_MAX = 50_000
CATEGORY_NAME_MAX = 100
LABEL_NAME_MAX = 50

# Known-dangerous fragments. This is a defanging pass, not an HTML sanitizer:
# whatever renders note text still has to escape it.
_DANGEROUS_BLOCK_RE = re.compile(
    r"<(script|style|iframe|object|embed)\b[^>]*>.*?</\1\s*>",
    re.IGNORECASE | re.DOTALL,
)
_EVENT_HANDLER_RE = re.compile(
    r"""\s+on[a-z]+\s*=\s*(?:"[^"]*"|'[^']*'|[^\s>]+)""",
    re.IGNORECASE,
)
_JS_URL_RE = re.compile(r"javascript\s*:", re.IGNORECASE)
_TAG_RE = re.compile(r"<[a-z][^<>]*>", re.IGNORECASE)


def validate_note(title: Optional[str], content: Optional[str]) -> dict[str, str]:
    """
    Check note title/content bounds.
    Returns a field -> message map; an empty map means the note is valid.
    """
    errors: dict[str, str] = {}
    stripped = (title or "").strip()
    if not stripped:
        errors["title"] = "Title is required"
    elif len(stripped) > TITLE_MAX:
        errors["title"] = f"Title must be at most {TITLE_MAX} characters"
    # content may be empty
    if content and len(content) > CONTENT_MAX:
        errors["content"] = f"Content must be at most {CONTENT_MAX:,} characters"
    return errors


def validate_name(name: Optional[str], *, limit: int, kind: str) -> dict[str, str]:
    """Name check shared by categories and labels."""
    stripped = (name or "").strip()
    if not stripped:
        return {"name": f"{kind} name is required"}
    if len(stripped) > limit:
        return {"name": f"{kind} name must be at most {limit} characters"}
    return {}


def _defang_tag(match: re.Match) -> str:
    # attributes only; plain prose mentioning "javascript:" is left alone
    tag = _EVENT_HANDLER_RE.sub("", match.group(0))
    return _JS_URL_RE.sub("", tag)


def sanitize_input(value: Optional[str]) -> str:
    """Trim and strip script blocks and similar injection vectors."""
    if not value:
        return ""
    cleaned = _DANGEROUS_BLOCK_RE.sub("", value)
    cleaned = _TAG_RE.sub(_defang_tag, cleaned)
    return cleaned.strip()
