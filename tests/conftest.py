"""
Test configuration and fixtures for the Website Diagnostic AI API.

Environment is prepared before the app is imported: a throwaway SQLite file,
dummy collaborator credentials and no request pacing or backoff delays.
"""

import os
import tempfile
from typing import Generator

import pytest
from dotenv import load_dotenv
from fastapi.testclient import TestClient

load_dotenv()

test_db_path = tempfile.mktemp(suffix=".db")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{test_db_path}"
os.environ["GOOGLE_GEMINI_API_KEY"] = "test-gemini-key"
os.environ["BUILTWITH_API_KEY"] = "test-builtwith-key"
os.environ["PAGESPEED_API_KEY"] = "test-pagespeed-key"
os.environ["BUILTWITH_REQUEST_DELAY_SECONDS"] = "0"
os.environ["RETRY_INITIAL_DELAY_SECONDS"] = "0"


@pytest.fixture(scope="session")
def test_app():
    """Create FastAPI test application."""
    from app.main import app

    return app


@pytest.fixture(scope="function")
def client(test_app) -> Generator[TestClient, None, None]:
    """
    Create a test client for making HTTP requests.
    Entering the client runs the lifespan, which wires the collaborators and
    creates the tables.
    """
    with TestClient(test_app) as test_client:
        yield test_client
    test_app.dependency_overrides.clear()


@pytest.fixture
def settings():
    from app.platform.config import get_settings

    return get_settings().model_copy(
        update={"RETRY_INITIAL_DELAY_SECONDS": 0.01, "BUILTWITH_REQUEST_DELAY_SECONDS": 0}
    )


@pytest.fixture
async def store():
    """Record store on the test database, tables created."""
    from app.features.diagnostic.services.store import AnalysisRecordStore
    from app.platform.db.session import SessionLocal, init_models

    await init_models()
    return AnalysisRecordStore(SessionLocal)


@pytest.fixture
def fake_collaborators():
    from tests.features.diagnostic.fakes import make_collaborators

    return make_collaborators()


@pytest.fixture
def diagnostic_client(client, test_app, fake_collaborators):
    """Client whose pipeline talks to in-memory collaborators instead of real APIs."""
    from app.features.diagnostic.dependencies.pipeline import get_collaborators

    test_app.dependency_overrides[get_collaborators] = lambda: fake_collaborators
    yield client
    test_app.dependency_overrides.pop(get_collaborators, None)
