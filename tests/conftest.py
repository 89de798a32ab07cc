"""Shared pytest fixtures for Canopy tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from canopy.config import Settings
from canopy.db.connection import Database
from canopy.events.router import get_event_store
from canopy.folders.router import get_folder_service
from canopy.generation.collaborator import ModelCollaborator
from canopy.main import app, build_services
from canopy.nodes.router import get_generation_service, get_node_service
from canopy.providers.registry import clear_providers, register_provider
from tests.fixtures import FakeProvider


@pytest.fixture
async def db():
    """In-memory database for tests."""
    database = await Database.connect(":memory:")
    yield database
    await database.close()


@pytest.fixture
def fake_provider():
    """A FakeProvider registered as the only provider for the test."""
    clear_providers()
    provider = FakeProvider()
    register_provider(provider)
    yield provider
    clear_providers()


@pytest.fixture
async def services(db, fake_provider):
    """Fully wired services over the in-memory database, as the app builds them."""
    svc = build_services(db, Settings(), collaborator=ModelCollaborator())
    yield svc
    await svc.generation.wait_idle()


@pytest.fixture
async def event_store(services):
    return services.store


@pytest.fixture
async def projector(services):
    return services.projector


@pytest.fixture
async def forest(services):
    return services.forest


@pytest.fixture
async def resolver(services):
    return services.resolver


@pytest.fixture
async def event_log(services):
    return services.event_log


@pytest.fixture
async def mutations(services):
    return services.mutations


@pytest.fixture
async def assembler(services):
    return services.assembler


@pytest.fixture
async def client(services):
    """Async test client with in-memory DB and FakeProvider wired into the app."""
    app.dependency_overrides[get_node_service] = lambda: services.nodes
    app.dependency_overrides[get_generation_service] = lambda: services.generation
    app.dependency_overrides[get_folder_service] = lambda: services.folders
    app.dependency_overrides[get_event_store] = lambda: services.store
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
    app.dependency_overrides.clear()
