import pytest


@pytest.fixture(autouse=True)
def api_key(monkeypatch):
    monkeypatch.setenv("YOUTUBE_DATA_API_KEY", "test-key")
    return "test-key"
