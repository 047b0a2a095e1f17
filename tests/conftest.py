import pytest

from scriptreel import metrics


@pytest.fixture(autouse=True)
def mock_env(monkeypatch):
    """Fake credentials for all tests."""
    monkeypatch.setenv("HEYGEN_API_KEY", "test-heygen-key")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "test-anthropic-key")
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "test-service-key")


@pytest.fixture(autouse=True)
def clean_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def sleeps():
    """Instant replacement for asyncio.sleep that records requested delays."""
    recorded = []

    async def fake_sleep(seconds):
        recorded.append(seconds)

    fake_sleep.calls = recorded
    return fake_sleep
