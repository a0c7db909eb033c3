"""
Shared pytest fixtures for the trigger tests.
"""

import os
import sys
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure the project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from database import Base, Document, Expense, User, UserSettings, get_db  # noqa: E402
from notifications import PushDeliveryError  # noqa: E402
from schemas import PushResult  # noqa: E402

FCM_TOKEN = "fcm-token-0123456789abcdefghijklmnop"


class RecordingDispatcher:
    """Stands in for the FCM dispatcher and keeps every message it was given."""

    def __init__(self, fail_on=None):
        self.sent = []
        self.fail_on = fail_on

    def send(self, message):
        if self.fail_on is not None and self.fail_on(message):
            raise PushDeliveryError("FCM failed: boom", status_code=500, body="boom")
        self.sent.append(message)
        return PushResult(success=True, status_code=200)


@pytest.fixture
def db():
    """In-memory SQLite session with all tables created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def client(db, dispatcher):
    """Test client with the database and dispatcher swapped for test doubles."""
    from fastapi.testclient import TestClient
    from main import app
    from router import get_dispatcher

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    from auth import create_trigger_token
    return {"Authorization": f"Bearer {create_trigger_token()}"}


def make_user(db, user_id="user-1", token=FCM_TOKEN, email="owner@example.com"):
    user = User(user_id=user_id, fcm_token=token, email=email)
    db.add(user)
    db.commit()
    return user


def make_settings(db, user_id="user-1", **fields):
    settings = UserSettings(user_id=user_id, **fields)
    db.add(settings)
    db.commit()
    return settings


def add_expense(db, amount, when, user_id="user-1", category="Food"):
    expense = Expense(
        user_id=user_id,
        amount=Decimal(str(amount)) if amount is not None else None,
        date=when,
        category=category,
    )
    db.add(expense)
    db.commit()
    return expense


def add_document(db, title, expiry_date, user_id="user-1", reminders_sent=None, folder_name=None):
    document = Document(
        user_id=user_id,
        title=title,
        expiry_date=expiry_date,
        reminders_sent=reminders_sent or [],
        folder_name=folder_name,
    )
    db.add(document)
    db.commit()
    return document


def at(day, hour=12, minute=0):
    """A naive UTC timestamp in October 2026."""
    return datetime(2026, 10, day, hour, minute)
