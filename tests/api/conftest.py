import pytest
from fastapi.testclient import TestClient

from passwordless.application.login_manager import LoginManager
from passwordless.infrastructure.memory.token_store import MemoryTokenStore
from passwordless.main import create_app
from passwordless.presentation.dependencies import get_login_manager
from tests.fakes import FakeClock, FakeTransport


@pytest.fixture()
def app_and_deps():
    app = create_app()
    clock = FakeClock()
    store = MemoryTokenStore(now=clock.now)
    transport = FakeTransport()
    manager = LoginManager(store, transport, now=clock.now)

    app.dependency_overrides[get_login_manager] = lambda: manager

    try:
        yield app, manager, transport, clock
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def client(app_and_deps):
    app, _, _, _ = app_and_deps
    return TestClient(app, raise_server_exceptions=False)
