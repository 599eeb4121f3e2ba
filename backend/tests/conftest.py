"""
Central pytest configuration for the e-library backend tests.

Every test runs against a fresh in-memory SQLite database. The engine uses
a StaticPool, so all sessions opened by the code under test share one
connection and see each other's committed rows.
"""

import os

# Test environment (set before elibrary is imported so lazy engines use it)
TEST_DATABASE_URL = "sqlite:///:memory:"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["TESTING"] = "true"
os.environ["RATE_LIMIT_ENABLED"] = "0"  # Disable rate limiting in tests
os.environ["LOG_TO_FILE"] = "0"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["FLASK_SECRET_KEY"] = "test-secret-key"
os.environ.pop("SENTRY_DSN", None)

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from elibrary.core.security import create_user_token  # noqa: E402
from elibrary.db.session import SessionLocal, create_tables, drop_tables  # noqa: E402
from elibrary.repositories.catalog_repo import CatalogRepository  # noqa: E402
from elibrary.repositories.user_repo import UserRepository  # noqa: E402
from sqlalchemy import func  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "api: mark test as API endpoint test")
    config.addinivalue_line("markers", "repositories: mark test as repository test")
    config.addinivalue_line("markers", "services: mark test as service layer test")
    config.addinivalue_line("markers", "security: mark test as security-related")


# =====================================================
# DATABASE FIXTURES
# =====================================================


@pytest.fixture(autouse=True)
def _fresh_database():
    """Create all tables before each test and drop them afterwards."""
    create_tables()
    yield
    drop_tables()


@pytest.fixture
def db_session():
    """Session for arranging data and driving repositories directly."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def count_rows():
    """Count rows of a model through a separate session."""

    def _count(model, **filters) -> int:
        session = SessionLocal()
        try:
            query = session.query(func.count()).select_from(model)
            if filters:
                query = query.filter_by(**filters)
            return query.scalar()
        finally:
            session.close()

    return _count


@pytest.fixture
def user(db_session):
    """An active reader with an empty library."""
    return UserRepository(db_session).create(email="reader@example.com", name="Reader")


@pytest.fixture
def other_user(db_session):
    return UserRepository(db_session).create(email="other@example.com", name="Other")


@pytest.fixture
def books(db_session):
    """Two catalog books keyed by product id."""
    catalog = CatalogRepository(db_session)
    return {
        "book.123": catalog.add(
            title="The Pragmatic Reader",
            product_id="book.123",
            actual_price=Decimal("4.99"),
            currency="USD",
        ),
        "book.456": catalog.add(
            title="Lagos Nights",
            product_id="book.456",
            discounted_price=Decimal("2.50"),
            currency="NGN",
        ),
    }


# =====================================================
# FLASK APPLICATION FIXTURES
# =====================================================


@pytest.fixture
def app():
    """Create a Flask application for testing."""
    from elibrary.main import create_app

    app = create_app()
    app.config.update({"TESTING": True})
    return app


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture
def auth_headers(user):
    token = create_user_token(user.id, user.email)
    return {"Authorization": f"Bearer {token}"}
