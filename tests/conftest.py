from types import SimpleNamespace

import pytest

from backend.app.config import Settings
from backend.app.logging_config import reset_metrics


@pytest.fixture(autouse=True)
def api_env(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    monkeypatch.delenv("API_KEY", raising=False)
    reset_metrics()
    yield


@pytest.fixture
def settings():
    return Settings(
        listing_model="gemini-test",
        enforce_schema=False,
        video_model="veo-test",
        video_resolution="720p",
        video_aspect_ratio="16:9",
        video_poll_interval=10,
        video_max_polls=5,
    )


def web_chunk(uri, title=None):
    return SimpleNamespace(web=SimpleNamespace(uri=uri, title=title))


def fake_response(text, chunks=None):
    if chunks is None:
        return SimpleNamespace(text=text, candidates=[SimpleNamespace(grounding_metadata=None)])
    metadata = SimpleNamespace(grounding_chunks=chunks)
    return SimpleNamespace(text=text, candidates=[SimpleNamespace(grounding_metadata=metadata)])


class FakeModels:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


class FakeGenaiClient:
    def __init__(self, models=None, operations=None):
        self.models = models
        self.operations = operations
        self.closed = False

    def close(self):
        self.closed = True


@pytest.fixture
def helpers():
    return SimpleNamespace(
        web_chunk=web_chunk,
        fake_response=fake_response,
        FakeModels=FakeModels,
        FakeGenaiClient=FakeGenaiClient,
    )
