"""Shared fixtures for the consent manager test suite."""
from datetime import datetime, timedelta, timezone

import pytest

from consent_manager.config import Settings
from consent_manager.lifecycle import ConsentLifecycleManager
from consent_manager.signing import SigningAuthority
from consent_manager.store import InMemoryConsentStore
from consent_manager.validation import ValidationEngine


class FakeClock:
    """Deterministic clock for lifecycle and expiry tests."""

    def __init__(self, start: datetime):
        self._current = start

    def __call__(self) -> datetime:
        return self._current

    def advance(self, **kwargs) -> None:
        self._current += timedelta(**kwargs)


@pytest.fixture
def anyio_backend():
    """Force asyncio backend to avoid pulling optional trio dependency in CI."""
    return "asyncio"


@pytest.fixture(scope="session")
def signer():
    """One signing key for the whole run; key generation is the slow part."""
    return SigningAuthority.generate(key_id="test-key")


@pytest.fixture
def settings():
    return Settings(metrics_enabled=False, store_backend="memory")


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return InMemoryConsentStore()


@pytest.fixture
def lifecycle(signer, store, settings, clock):
    return ConsentLifecycleManager(signer, store, settings=settings, clock=clock)


@pytest.fixture
def engine(signer, store, clock):
    return ValidationEngine(signer, store, clock=clock)
