import pytest

from auth.models import TokenPair
from auth.token_store import MemoryTokenStore
from tests.pipeline_helpers import PortalBackend, RecordingNotifier


@pytest.fixture
def token_store() -> MemoryTokenStore:
    return MemoryTokenStore(TokenPair(access="access1", refresh="refresh1"))


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def backend() -> PortalBackend:
    return PortalBackend()


@pytest.fixture
def clean_env(monkeypatch):
    for key in (
        "PORTAL_API_BASE_URL",
        "PORTAL_API_TIMEOUT",
        "PORTAL_REFRESH_PATH",
        "PORTAL_TOKEN_STORE_PATH",
        "PORTAL_API_DEBUG",
    ):
        monkeypatch.delenv(key, raising=False)
    return monkeypatch
