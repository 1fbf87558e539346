"""
Test configuration and fixtures for the Care Scheduling API test suite.

Tests run against an in-memory SQLite database; the schema is created and
dropped around every test.
"""

import os

# Must be set before anything imports care_scheduling.config
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_FORMAT", "console")

import pytest
from typing import Dict

from fastapi.testclient import TestClient

from care_scheduling.config import settings
from care_scheduling.database import Base, SessionLocal, engine, get_db
from care_scheduling.main import app
from tests.helpers import Factory


@pytest.fixture(scope="function")
def db_session():
    """Fresh schema and session per test"""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def factory(db_session) -> Factory:
    return Factory(db_session)


@pytest.fixture(autouse=True)
def no_refresh_on_write(monkeypatch):
    """Stores refresh eagerly in production; tests opt back in explicitly"""
    monkeypatch.setattr(settings, "refresh_on_write", False)


@pytest.fixture(scope="function")
def api_key() -> str:
    """Provide a valid API key for authenticated requests"""
    keys = settings.get_api_keys()
    if not keys:
        raise RuntimeError("No API keys configured for tests")
    return keys[0]


@pytest.fixture(scope="function")
def admin_key() -> str:
    return settings.get_admin_api_keys()[0]


@pytest.fixture(scope="function")
def client(api_key: str, db_session) -> TestClient:
    """FastAPI TestClient with default auth headers"""

    def _override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = _override_get_db

    with TestClient(app) as test_client:
        default_headers: Dict[str, str] = {
            "X-API-Key": api_key,
        }

        # Merge default headers into each request by wrapping the original call
        original_request = test_client.request

        def request_with_auth(method, url, **kwargs):  # type: ignore[override]
            headers = kwargs.pop("headers", None) or {}
            merged_headers = {**default_headers, **headers}
            return original_request(method, url, headers=merged_headers, **kwargs)

        test_client.request = request_with_auth  # type: ignore[assignment]
        yield test_client

    app.dependency_overrides.pop(get_db, None)


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: mark test as unit test"
    )
    config.addinivalue_line(
        "markers", "api: mark test as API test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers based on file paths"""
    for item in items:
        fspath = str(item.fspath)
        if 'tests/api' in fspath:
            item.add_marker(pytest.mark.api)
        elif 'tests/services' in fspath:
            item.add_marker(pytest.mark.unit)
        if 'concurrency' in fspath:
            item.add_marker(pytest.mark.slow)
