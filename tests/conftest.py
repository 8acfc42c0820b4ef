# tests/conftest.py

from datetime import date
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from nowly.database import create_tables, get_db
from nowly.models import Task, User
from nowly.routers.auth import get_current_user, get_password_hash


@pytest.fixture()
def engine():
    """
    Fresh in-memory SQLite database per test.

    StaticPool keeps a single connection so every session (and the
    TestClient worker thread) sees the same database.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(bind=engine)
    yield engine
    SQLModel.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


def _make_user(db, email: str) -> User:
    user = User(email=email, hashed_password=get_password_hash("password123"))
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture()
def user(db) -> User:
    return _make_user(db, "ada@example.com")


@pytest.fixture()
def other_user(db) -> User:
    return _make_user(db, "grace@example.com")


@pytest.fixture()
def make_task(db):
    """Insert a task with an explicit position and return it."""

    def _make(
        owner: User,
        position: str,
        scheduled_date: Optional[date] = None,
        title: Optional[str] = None,
        **fields,
    ) -> Task:
        task = Task(
            user_id=owner.id,
            title=title or f"task {position}",
            position=position,
            scheduled_date=scheduled_date,
            **fields,
        )
        db.add(task)
        db.commit()
        db.refresh(task)
        return task

    return _make


@pytest.fixture()
def anon_client(db):
    """Client with a test database but real authentication."""
    from nowly.main import app

    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def client(anon_client, user):
    """Client already signed in as ``user``."""
    from nowly.main import app

    app.dependency_overrides[get_current_user] = lambda: user
    return anon_client
