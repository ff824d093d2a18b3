import pytest
from fastapi.testclient import TestClient

from notevault.auth import create_user, issue_token
from notevault.db import init_db, reset_engine
from notevault.taxonomy import seed_default_categories


@pytest.fixture
def db(tmp_path, monkeypatch):
    monkeypatch.setenv("NOTEVAULT_DB_PATH", str(tmp_path / "test.db"))
    monkeypatch.setenv("NOTEVAULT_HOME", str(tmp_path / "home"))
    reset_engine()   # pick up the new path
    init_db()
    seed_default_categories()
    yield tmp_path
    reset_engine()


@pytest.fixture
def user(db):
    return create_user("Ada", "ada@example.com")


@pytest.fixture
def other_user(db):
    return create_user("Bob", "bob@example.com")


@pytest.fixture
def api(db):
    from notevault.app import app

    # no context manager: lifespan would re-run setup against the same db
    return TestClient(app)


@pytest.fixture
def auth(user):
    return {"Authorization": f"Bearer {issue_token(user)}"}
