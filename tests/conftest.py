import pytest

from auth.credential_store import CredentialStore
from auth.kv_store import MemoryKVStore
from tests.helpers import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv(clock) -> MemoryKVStore:
    return MemoryKVStore(clock=clock)


@pytest.fixture
def store(kv) -> CredentialStore:
    return CredentialStore(kv)
