import pytest

from zk_vault.vault import crypto
from zk_vault.vault.crypto import MasterKey
from zk_vault.vault.storage import MemoryMarkerStore, MemoryVaultStore


class FakeClock:
    """Manually advanced clock (seconds)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fast_kdf(monkeypatch):
    """Lower the PBKDF2 work factor so session tests stay fast."""
    monkeypatch.setattr(crypto, "PBKDF2_ITERATIONS", 1_000)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryVaultStore()


@pytest.fixture
def markers():
    return MemoryMarkerStore()


@pytest.fixture
def key():
    return MasterKey(bytes(range(32)))


@pytest.fixture
def other_key():
    return MasterKey(bytes(range(1, 33)))
