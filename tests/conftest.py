"""
Test configuration and fixtures for the meal nutrition analyzer.

- Function-scoped in-memory SQLite engine (fresh schema per test)
- TestClient with database dependency override
- Analysis service wired to MockNutritionClient (no network calls)
"""

import os

# Must be set before app modules read settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ANTHROPIC_API_KEY"] = ""

from typing import Generator
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import settings
from app.database import Base, get_db
from app.main import app
from app.services.ai_service import NutritionAnalysisService
from tests.fixtures.mocks import MockNutritionClient


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    """No backoff sleeps between retry attempts."""
    monkeypatch.setattr(settings, "analysis_retry_base_delay", 0)
    monkeypatch.setattr(settings, "expose_error_details", False)


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def test_engine():
    """In-memory database shared by every connection of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(test_engine) -> Generator[Session, None, None]:
    TestingSessionLocal = sessionmaker(bind=test_engine)
    session = TestingSessionLocal()

    yield session

    session.close()


# =============================================================================
# Analysis Service Fixtures
# =============================================================================


@pytest.fixture
def mock_model_client() -> MockNutritionClient:
    return MockNutritionClient()


@pytest.fixture
def analysis_service(mock_model_client) -> NutritionAnalysisService:
    """Real pipeline with a configured credential and a mocked model."""
    return NutritionAnalysisService(api_key="test-api-key", client=mock_model_client)


@pytest.fixture
def keyless_service(mock_model_client) -> NutritionAnalysisService:
    """Real pipeline with no credential configured."""
    return NutritionAnalysisService(api_key="", client=mock_model_client)


# =============================================================================
# TestClient Fixtures
# =============================================================================


@pytest.fixture
def client(db: Session, analysis_service) -> Generator[TestClient, None, None]:
    """
    TestClient with database dependency override and the mocked service.

    The database session is injected into the app's get_db dependency.
    """

    def override_get_db():
        try:
            yield db
        finally:
            pass  # Don't close - managed by db fixture

    app.dependency_overrides[get_db] = override_get_db

    with patch("app.api.meal_analysis.nutrition_service", analysis_service):
        with TestClient(app) as test_client:
            yield test_client

    app.dependency_overrides.clear()
