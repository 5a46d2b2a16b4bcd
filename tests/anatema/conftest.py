import sys
from pathlib import Path

import pytest


def pytest_configure():
    # This repo uses a src/ layout, so when running tests without an editable
    # install, we add <repo>/src to sys.path.
    repo_root = Path(__file__).resolve().parents[2]
    src_path = str(repo_root / "src")
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


class FakeProvider:
    """Completion provider returning scripted responses.

    Each item in ``responses`` is either a string (returned) or an exception
    instance (raised). The last item repeats once the script runs out.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls: list[dict] = []

    def generate_completion(self, prompt, *, system_message=None):
        self.calls.append({"prompt": prompt, "system_message": system_message})
        idx = min(len(self.calls), len(self.responses)) - 1
        item = self.responses[idx]
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def fake_provider():
    """Fixture: factory for scripted completion providers."""

    return FakeProvider


@pytest.fixture
def store(tmp_path):
    from anatema.storage import FileStore

    return FileStore(tmp_path / "store")


@pytest.fixture
def sleeps(monkeypatch):
    """Record pipeline/request-layer sleeps instead of waiting."""

    recorded: list[float] = []
    monkeypatch.setattr("anatema.llm.pipeline.time.sleep", recorded.append)
    monkeypatch.setattr("anatema.api.client.time.sleep", recorded.append)
    return recorded
