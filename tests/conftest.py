import os
import sys

PROJECT_ROOT = os.path.dirname(os.path.dirname(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from tidyhome import db
from tidyhome import models  # noqa: F401  registers tables with the metadata
from tidyhome.main import app


test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

PASSWORD = "Secret123"


def override_get_session():
    with Session(test_engine) as session:
        yield session


def reset_database():
    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)


db.engine = test_engine
app.dependency_overrides[db.get_session] = override_get_session


@pytest.fixture(autouse=True)
def setup_db():
    reset_database()
    yield


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def session():
    with Session(test_engine) as session:
        yield session


def register(client, email, name="Test User", password=PASSWORD):
    return client.post(
        "/api/auth/register", json={"name": name, "email": email, "password": password}
    )


def login(client, email, password=PASSWORD):
    return client.post("/api/auth/login", json={"email": email, "password": password})


@pytest.fixture
def user_client():
    """Return a factory that registers a user and hands back a logged-in client."""

    def make(email, name="Test User"):
        c = TestClient(app)
        assert register(c, email, name).status_code == 201
        assert login(c, email).status_code == 200
        c.user_id = c.get("/api/auth/session").json()["user"]["id"]
        return c

    return make


@pytest.fixture
def alice(user_client):
    return user_client("alice@example.com", "Alice")


@pytest.fixture
def bob(user_client):
    return user_client("bob@example.com", "Bob")


def make_category(c, name="Cleaning", household_id=None):
    body = {"name": name}
    if household_id is not None:
        body["householdId"] = household_id
    resp = c.post("/api/categories", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


def make_household(c, name="Home"):
    resp = c.post("/api/households", json={"name": name})
    assert resp.status_code == 201, resp.text
    return resp.json()


def make_task(c, category_id, title="Vacuum", due="2030-01-15T10:00:00", **extra):
    body = {"title": title, "dueDate": due, "categoryId": category_id, **extra}
    resp = c.post("/api/tasks", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()
