"""Shared fixtures for the family tree test suite."""
import os

# Set env vars BEFORE any app imports
os.environ.setdefault("COOKIE_SECRET", "test-secret-key-for-testing")
os.environ.setdefault("SETUP_TOKEN", "test-setup-token")

import pytest
import kuzu
from fastapi.testclient import TestClient

from familytree.db import _init_schema, get_conn
from familytree import auth, individuals, relationships


# Ensure auth module uses test secrets
auth.COOKIE_SECRET = os.environ["COOKIE_SECRET"]
auth.SETUP_TOKEN = os.environ["SETUP_TOKEN"]


# ── Database fixtures ──

@pytest.fixture
def db_path(tmp_path):
    """Temp directory for a fresh KuzuDB."""
    return tmp_path / "test_db"


@pytest.fixture
def db(db_path):
    """Initialized KuzuDB with the full schema."""
    database = kuzu.Database(str(db_path))
    _init_schema(database)
    yield database
    database.close()


@pytest.fixture
def conn(db):
    """KuzuDB connection for unit tests."""
    return kuzu.Connection(db)


# ── User fixtures ──

@pytest.fixture
def user_alice(conn):
    """Approved admin."""
    return auth.create_user(conn, "alice@example.com", "Alice Admin", "password123",
                            role=auth.ROLE_ADMIN, is_approved=True)


@pytest.fixture
def user_bob(conn):
    """Approved non-admin user."""
    return auth.create_user(conn, "bob@example.com", "Bob User", "password456",
                            is_approved=True)


@pytest.fixture
def user_carol(conn):
    """Second approved non-admin user."""
    return auth.create_user(conn, "carol@example.com", "Carol User", "password789",
                            is_approved=True)


# ── Individual fixtures ──

@pytest.fixture
def grandpa(conn, user_bob):
    return individuals.create_individual(conn, user_bob["id"], "Walter", "Smith",
                                         is_alive=False, birth_date="1920-03-01",
                                         death_date="1990-11-20")


@pytest.fixture
def dad(conn, user_bob):
    return individuals.create_individual(conn, user_bob["id"], "Tom", "Smith",
                                         birth_date="1950-06-12")


@pytest.fixture
def aunt(conn, user_bob):
    return individuals.create_individual(conn, user_bob["id"], "Ann", "Smith")


@pytest.fixture
def child(conn, user_bob):
    return individuals.create_individual(conn, user_bob["id"], "Kim", "Smith")


@pytest.fixture
def family(conn, user_bob, grandpa, dad, aunt, child):
    """grandpa -child-> dad, grandpa -child-> aunt, dad -child-> kim."""
    relationships.create_relationship(conn, user_bob, grandpa["id"], dad["id"], "child")
    relationships.create_relationship(conn, user_bob, grandpa["id"], aunt["id"], "child")
    relationships.create_relationship(conn, user_bob, dad["id"], child["id"], "child")
    return {"grandpa": grandpa, "dad": dad, "aunt": aunt, "child": child}


# ── FastAPI app fixtures ──

@pytest.fixture
def app_with_db(db):
    """FastAPI app with dependency override pointing at test DB."""
    from familytree.main import app

    def override_get_conn():
        c = kuzu.Connection(db)
        try:
            yield c
        finally:
            pass

    app.dependency_overrides[get_conn] = override_get_conn
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app_with_db):
    """Unauthenticated TestClient."""
    return TestClient(app_with_db, raise_server_exceptions=False)


def _make_authenticated_client(app, db, email, name, password, is_admin=False):
    """Helper: create an approved user and return an authenticated TestClient."""
    c = kuzu.Connection(db)
    try:
        user = auth.create_user(c, email, name, password,
                                role=auth.ROLE_ADMIN if is_admin else auth.ROLE_USER,
                                is_approved=True)
    except ValueError:
        user = auth.get_user_by_email(c, email)
    token = auth.create_session_token(user["id"])
    tc = TestClient(app, raise_server_exceptions=False, cookies={"session": token})
    tc._test_user = user
    return tc


@pytest.fixture
def admin_client(app_with_db, db):
    """Admin-authenticated TestClient (Alice)."""
    return _make_authenticated_client(
        app_with_db, db, "alice@test.com", "Alice", "password123", is_admin=True
    )


@pytest.fixture
def auth_client(app_with_db, db):
    """Regular user TestClient (Bob)."""
    return _make_authenticated_client(
        app_with_db, db, "bob@test.com", "Bob", "password456"
    )


@pytest.fixture
def other_client(app_with_db, db):
    """Second regular user TestClient (Eve)."""
    return _make_authenticated_client(
        app_with_db, db, "eve@test.com", "Eve", "password000"
    )
