from __future__ import annotations
from typing import Optional
import secrets

LINK_BYTES = 16  # 128 bits


def mint_public_link_id() -> str:
    return secrets.token_urlsafe(LINK_BYTES)


def next_public_link_id(current: Optional[str], is_public: bool, is_draft: bool) -> Optional[str]:
    """
    Public link id after a visibility change.

    A published public note keeps its link (or gets a fresh one); anything else
    loses it. Cleared ids are never handed out again.
    """
    if is_public and not is_draft:
        return current or mint_public_link_id()
    return None
