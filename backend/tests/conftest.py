import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

import pytest
from fastapi.testclient import TestClient

from settleup.database import Base, SessionLocal, engine, get_db
from settleup.main import app
from settleup.services.store import ChangeFeed, SqlAlchemyStore


def override_get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def store(db, feed):
    return SqlAlchemyStore(db, feed=feed)


@pytest.fixture
def group_id(client):
    res = client.post("/api/groups", json={
        "name": "Trip",
        "members": [
            {"id": "A", "name": "Alice", "is_admin": True},
            {"id": "B", "name": "Bob"},
            {"id": "C", "name": "Carol"},
        ],
    })
    return res.json()["id"]


@pytest.fixture
def add_expense(client, group_id):
    def _add(paid_by="A", amount=90.0, participant_ids=("A", "B", "C"), **extra):
        body = {
            "group_id": group_id,
            "paid_by": paid_by,
            "amount": amount,
            "participant_ids": list(participant_ids),
            "description": "Dinner",
        }
        body.update(extra)
        res = client.post("/api/expenses", json=body)
        assert res.status_code == 200, res.text
        return res.json()
    return _add
