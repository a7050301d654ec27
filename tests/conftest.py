from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.services.session import SessionController, SessionRegistry, get_registry
from tests.factories import FakeGenerator, fast_progress


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def controller(generator: FakeGenerator) -> SessionController:
    return SessionController(generator, progress=fast_progress())


@pytest.fixture
def client(generator: FakeGenerator):
    registry = SessionRegistry(controller_factory=lambda: SessionController(generator, progress=fast_progress()))
    app.dependency_overrides[get_registry] = lambda: registry
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    registry.close()
