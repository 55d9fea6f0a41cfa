"""OpenAI-compatible client: stream parsing and request retries (requests patched)."""
import json

import pytest
import requests

from bizlink.core.llm import openai as openai_module
from bizlink.core.llm.base import GenerationError
from bizlink.core.llm.openai import OpenAILLMClient


class FakeResponse:
    def __init__(self, status_code=200, lines=(), body=None, fail_midway=False):
        self.status_code = status_code
        self._lines = list(lines)
        self._body = body
        self._fail_midway = fail_midway
        self.closed = False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._body

    def iter_lines(self):
        for line in self._lines:
            yield line.encode("utf-8")
        if self._fail_midway:
            raise requests.ConnectionError("connection dropped")

    def close(self):
        self.closed = True


def chunk(content):
    return "data: " + json.dumps({"choices": [{"delta": {"content": content}}]})


@pytest.fixture
def no_sleep(monkeypatch):
    monkeypatch.setattr(openai_module.time, "sleep", lambda seconds: None)


def patch_post(monkeypatch, responses):
    calls = []

    def fake_post(url, json=None, headers=None, timeout=None, stream=False):
        calls.append({"url": url, "json": json, "headers": headers, "stream": stream})
        result = responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    monkeypatch.setattr(openai_module.requests, "post", fake_post)
    return calls


def make_client():
    return OpenAILLMClient(api_key="sk-test", base_url="https://llm.example/v1/", model="test-model")


def test_stream_yields_delta_content_until_done(monkeypatch):
    response = FakeResponse(lines=[
        chunk("Hel"),
        "",
        ": keep-alive",
        chunk("lo"),
        "data: {not json",
        "data: " + json.dumps({"choices": [{"delta": {"role": "assistant"}}]}),
        chunk("!"),
        "data: [DONE]",
        chunk("ignored"),
    ])
    calls = patch_post(monkeypatch, [response])

    tokens = list(make_client().stream([{"role": "user", "content": "hi"}]))

    assert tokens == ["Hel", "lo", "!"]
    assert response.closed is True
    assert calls[0]["url"] == "https://llm.example/v1/chat/completions"
    assert calls[0]["stream"] is True
    assert calls[0]["json"]["stream"] is True
    assert calls[0]["json"]["model"] == "test-model"
    assert calls[0]["headers"]["Authorization"] == "Bearer sk-test"


def test_stream_error_chunk_raises(monkeypatch):
    patch_post(monkeypatch, [FakeResponse(lines=[chunk("a"), 'data: {"error": {"message": "overloaded"}}'])])
    stream = make_client().stream([{"role": "user", "content": "hi"}])
    assert next(stream) == "a"
    with pytest.raises(GenerationError):
        next(stream)


def test_stream_interrupted_raises_generation_error(monkeypatch):
    response = FakeResponse(lines=[chunk("partial")], fail_midway=True)
    patch_post(monkeypatch, [response])
    stream = make_client().stream([{"role": "user", "content": "hi"}])
    assert next(stream) == "partial"
    with pytest.raises(GenerationError):
        next(stream)
    assert response.closed is True


def test_rate_limit_is_retried(monkeypatch, no_sleep):
    calls = patch_post(monkeypatch, [
        FakeResponse(status_code=429),
        FakeResponse(body={"choices": [{"message": {"content": "done"}}]}),
    ])
    assert make_client().chat([{"role": "user", "content": "hi"}]) == "done"
    assert len(calls) == 2


def test_transport_errors_exhaust_retries(monkeypatch, no_sleep):
    calls = patch_post(monkeypatch, [requests.ConnectionError("refused")] * 3)
    with pytest.raises(GenerationError):
        list(make_client().stream([{"role": "user", "content": "hi"}]))
    assert len(calls) == 3


def test_chat_without_choices_returns_empty(monkeypatch):
    patch_post(monkeypatch, [FakeResponse(body={"choices": []})])
    assert make_client().chat([{"role": "user", "content": "hi"}]) == ""
