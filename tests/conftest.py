import pytest

pytest.register_assert_rewrite("tests.store_contract")

from passwordless.application.login_manager import LoginManager
from passwordless.domain.context import CallContext
from passwordless.infrastructure.memory.token_store import MemoryTokenStore
from tests.fakes import FakeClock, FakeTransport


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def ctx():
    return CallContext.background()


@pytest.fixture()
def store(clock):
    return MemoryTokenStore(now=clock.now)


@pytest.fixture()
def transport():
    return FakeTransport()


@pytest.fixture()
def manager(store, transport, clock):
    return LoginManager(store, transport, now=clock.now)
