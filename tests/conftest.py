"""
Shared pytest fixtures for the API server test suite.

Provides the Flask application, test client, database session, tokens and
data factories used by the unit and integration suites.  Signing keys are
generated in memory and injected through the ``TEST_JWT_*`` variables
before the first application is built.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from typing import Any

import pytest
from faker import Faker

os.environ["FLASK_ENV"] = "testing"

from tests.helpers import TEST_PRIVATE_KEY, TEST_PUBLIC_KEY, auth_headers, create_test_token

os.environ["TEST_JWT_PRIVATE_KEY"] = TEST_PRIVATE_KEY
os.environ["TEST_JWT_PUBLIC_KEY"] = TEST_PUBLIC_KEY

from api_app import create_app, db
from api_app.models import Task, TaskPriority, TaskStatus, User

fake = Faker()


@pytest.fixture(scope="session")
def app():
    """
    Provide the Flask application instance for the entire test session.

    Uses the default collaborators: local auth with the in-memory test keys
    and the SQL-backed task store on an in-memory SQLite database.
    """
    application = create_app("testing")
    yield application


@pytest.fixture(scope="function")
def db_session(app):
    """
    Provide a clean database for each test function.

    Creates all tables before the test, then rolls back and drops
    everything afterwards so no rows leak between tests.
    """
    with app.app_context():
        db.create_all()
        yield db
        db.session.rollback()
        db.drop_all()


@pytest.fixture(scope="function")
def client(app, db_session):
    """Provide a Flask test client backed by a clean database."""
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture
def user_factory(db_session) -> Callable[..., User]:
    """Create and persist ``User`` rows with a known password."""

    def _create_user(
        username: str | None = None,
        email: str | None = None,
        password: str = "StrongPass123!",
    ) -> User:
        user = User(
            username=username or fake.unique.user_name(),
            email=email or fake.unique.email(),
        )
        user.set_password(password)
        db_session.session.add(user)
        db_session.session.commit()
        return user

    return _create_user


@pytest.fixture
def task_factory(db_session) -> Callable[..., Task]:
    """Create and persist ``Task`` rows owned by ``user_id`` (default 1)."""

    def _create_task(
        *,
        user_id: int = 1,
        title: str | None = None,
        status: str = TaskStatus.PENDING.value,
        priority: str = TaskPriority.MEDIUM.value,
    ) -> Task:
        task = Task(
            user_id=user_id,
            title=title or fake.sentence(nb_words=4),
            description=fake.paragraph(),
            status=status,
            priority=priority,
        )
        db_session.session.add(task)
        db_session.session.commit()
        return task

    return _create_task


@pytest.fixture
def test_token() -> str:
    """Valid token for user_id=1 ('user_one')."""
    return create_test_token(user_id=1, username="user_one")


@pytest.fixture
def second_user_token() -> str:
    """Valid token for user_id=2 ('user_two'), for tenant-isolation tests."""
    return create_test_token(user_id=2, username="user_two")


@pytest.fixture
def api_headers(test_token) -> dict[str, str]:
    return auth_headers(test_token)


@pytest.fixture
def second_user_headers(second_user_token) -> dict[str, str]:
    return auth_headers(second_user_token)


@pytest.fixture
def valid_task_data() -> dict[str, Any]:
    """A complete, valid task payload."""
    return {
        "title": "Test Task",
        "description": "This is a test task description",
        "status": TaskStatus.PENDING.value,
        "priority": TaskPriority.HIGH.value,
        "due_date": "2030-01-15T09:30:00Z",
        "estimated_minutes": 45,
    }
