"""
Test configuration for pytest
"""

import pytest
import os
from typing import Generator

# Test environment variables
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ.pop("SECURITY_SERVICE_URL", None)
os.environ.pop("KITCHEN_WEBHOOK_TOKEN", None)

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session

import tableside.models  # noqa: F401
from tableside.core.database import get_session
from tableside.services.kitchen import get_kitchen_notifier
from tableside.services.security import get_token_issuer

from factories import FakeKitchen, FakeTokenIssuer


# Create test engine using in-memory SQLite for unit tests
test_engine = create_engine(
    "sqlite:///:memory:",
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a clean database session for each test"""
    # Create all tables
    SQLModel.metadata.create_all(test_engine)

    # Create session
    with Session(test_engine) as session:
        yield session

    # Cleanup
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def token_issuer() -> FakeTokenIssuer:
    return FakeTokenIssuer()


@pytest.fixture
def kitchen() -> FakeKitchen:
    return FakeKitchen()


@pytest.fixture
def client(db, token_issuer, kitchen) -> Generator[TestClient, None, None]:
    """API client wired to the test session and fake collaborators"""
    from tableside.main import app

    app.dependency_overrides[get_session] = lambda: db
    app.dependency_overrides[get_token_issuer] = lambda: token_issuer
    app.dependency_overrides[get_kitchen_notifier] = lambda: kitchen

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
