"""Shared test fixtures for in-memory collaborators and the FastAPI test client."""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from stackci.dependencies import get_event_store
from stackci.main import app
from stackci.services.artifacts import InMemoryArtifactStore
from stackci.services.event_store import InMemoryEventStore
from stackci.services.github_client import InMemoryRepository
from stackci.services.invoker import InMemoryInvoker
from stackci.services.secrets import InMemorySecretStore
from stackci.services.stack_manager import InMemoryStackManager
from tests.factories import PARAMETER_MANIFEST, PIPELINE_TEMPLATE, TOKEN, TOKEN_KEY


@pytest.fixture
def stack_manager() -> InMemoryStackManager:
    """Create a fresh in-memory stack manager for test inspection."""
    return InMemoryStackManager()


@pytest.fixture
def repository() -> InMemoryRepository:
    """A repository holding a pipeline template and a parameter manifest."""
    return InMemoryRepository(
        {
            "pipeline.json": PIPELINE_TEMPLATE,
            "parameters.json": PARAMETER_MANIFEST,
        }
    )


@pytest.fixture
def secret_store() -> InMemorySecretStore:
    return InMemorySecretStore({TOKEN_KEY: TOKEN})


@pytest.fixture
def invoker() -> InMemoryInvoker:
    return InMemoryInvoker()


@pytest.fixture
def artifact_store() -> InMemoryArtifactStore:
    return InMemoryArtifactStore()


@pytest.fixture
def mock_event_store() -> InMemoryEventStore:
    """Create a fresh in-memory event store for test inspection."""
    return InMemoryEventStore()


@pytest.fixture
async def client(mock_event_store: InMemoryEventStore) -> AsyncGenerator[AsyncClient, None]:
    """Yield an httpx AsyncClient with the event store overridden.

    Uses the in-memory event store so tests can inspect what the webhook
    listener persisted without touching DynamoDB.
    """
    app.dependency_overrides[get_event_store] = lambda: mock_event_store
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
