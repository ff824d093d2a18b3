from __future__ import annotations
from contextlib import contextmanager
from typing import Iterator
from sqlalchemy import event
from sqlmodel import SQLModel, Session, create_engine

from .config import get_settings

_ENGINE = None
_ENGINE_URL = None  # track current engine's URL so we can switch when env changes


def _compute_url() -> str:
    db_path = get_settings().db_path
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{db_path}"


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def _register_functions(dbapi_conn, connection_record) -> None:
    # SQLite's builtin lower() only folds ASCII; search and title sort rely on it
    dbapi_conn.create_function("lower", 1, _unicode_lower, deterministic=True)


def get_engine():
    global _ENGINE, _ENGINE_URL
    url = _compute_url()
    if _ENGINE is None or _ENGINE_URL != url:
        # swap engine if URL changed (common in tests)
        if _ENGINE is not None:
            _ENGINE.dispose()
        # request handlers run in a threadpool
        _ENGINE = create_engine(url, echo=False, connect_args={"check_same_thread": False})
        event.listen(_ENGINE, "connect", _register_functions)
        _ENGINE_URL = url
    return _ENGINE


def reset_engine() -> None:
    """For tests: drop the cached engine so a new NOTEVAULT_DB_PATH is picked up."""
    global _ENGINE, _ENGINE_URL
    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = None
    _ENGINE_URL = None


def init_db() -> None:
    from . import models  # noqa: F401  register tables on the metadata

    SQLModel.metadata.create_all(get_engine())


def get_session() -> Session:
    # keep objects alive after commit so returned models retain values
    return Session(get_engine(), expire_on_commit=False)


@contextmanager
def session_scope() -> Iterator[Session]:
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
