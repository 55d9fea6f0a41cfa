"""
Shared fixtures. DATABASE_PATH is pointed at a temp dir before the package
is imported so the module-level engine never touches ~/.bizlink.
"""
import os
import tempfile
import time

_TMP_DIR = tempfile.mkdtemp(prefix="bizlink_test_")
os.environ.setdefault("DATABASE_PATH", os.path.join(_TMP_DIR, "bizlink.db"))
os.environ.setdefault("DASHBOARD_INTERVAL", "0")

import pytest

from bizlink.core.llm.base import GenerationError, LLMClient


class ScriptedLLM(LLMClient):
    """Yields a fixed token list; optionally raises before token number `fail_after`."""

    def __init__(self, tokens, fail_after=None, delay=0.0):
        self.tokens = list(tokens)
        self.fail_after = fail_after
        self.delay = delay
        self.calls = []

    def chat(self, messages, temperature=0.7, max_tokens=None):
        return "".join(self.tokens)

    def stream(self, messages, temperature=0.7):
        self.calls.append(list(messages))
        for i, token in enumerate(self.tokens):
            if self.fail_after is not None and i == self.fail_after:
                raise GenerationError("upstream died")
            if self.delay:
                time.sleep(self.delay)
            yield token


class FakeTransport:
    """Stands in for a WebSocket; records every frame sent."""

    def __init__(self, fail_sends=False):
        self.fail_sends = fail_sends
        self.accepted = False
        self.closed = None
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_json(self, obj):
        if self.fail_sends:
            raise RuntimeError("connection reset")
        self.sent.append(obj)

    async def close(self, code=1000, reason=""):
        self.closed = (code, reason)

    def events(self, name):
        return [frame["data"] for frame in self.sent if frame["event"] == name]


@pytest.fixture(autouse=True)
def reset_metrics():
    from bizlink.core.observability.metrics import get_metrics
    get_metrics().reset()
    yield


@pytest.fixture
def make_llm():
    return ScriptedLLM


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def session_factory(tmp_path):
    from bizlink.core.memory.db import create_session_factory, init_db
    factory = create_session_factory(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(factory)
    return factory
