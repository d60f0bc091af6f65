"""
conftest.py – shared fixtures for the provider test-suite.

Purpose and behavior:
- Every test runs against a controlled environment: all DeepSeek / GOOSE
  variables are removed first so the developer's shell cannot leak into
  resolution results.
- HTTP is never performed. `FakeSession` stands in for `requests.Session` and
  returns scripted `FakeResponse` objects, recording each call so tests can
  assert on URL, headers, JSON body and timeout.
"""

import json

import pytest

from deepseek_provider.llm.provider_config import ProviderConfig, resolve_roles

MANAGED_VARIABLES = (
    "DEEPSEEK_API_KEY",
    "DEEPSEEK_HOST",
    "DEEPSEEK_BASE_PATH",
    "DEEPSEEK_TIMEOUT",
    "DEEPSEEK_CUSTOM_HEADERS",
    "GOOSE_PROVIDER",
    "GOOSE_MODEL",
    "GOOSE_LEAD_MODEL",
    "GOOSE_LEAD_PROVIDER",
    "GOOSE_PLANNER_MODEL",
    "GOOSE_PLANNER_PROVIDER",
    "LOG_LEVEL",
)

TEST_KEY = "sk-test-0123456789abcdef"


class FakeResponse:
    """Minimal `requests.Response` double covering the attributes the client reads."""

    def __init__(self, status_code=200, json_data=None, text=None, lines=None,
                 error=None, url="https://api.deepseek.com/v1/chat/completions"):
        self.status_code = status_code
        self.url = url
        self.encoding = None
        self.closed = False
        self._lines = list(lines or [])
        self._error = error
        if text is None:
            text = json.dumps(json_data) if json_data is not None else ""
        self.text = text

    def json(self):
        return json.loads(self.text)

    def iter_lines(self, decode_unicode=False):
        for line in self._lines:
            yield line
        if self._error is not None:
            raise self._error

    def close(self):
        self.closed = True


class FakeSession:
    """Scripted `requests.Session` double.

    Each queued item is either a `FakeResponse` to return or an exception to raise.
    """

    def __init__(self, *responses):
        self.queue = list(responses)
        self.calls = []
        self.closed = False

    def _next(self, method, url, kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        item = self.queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def post(self, url, **kwargs):
        return self._next("POST", url, kwargs)

    def get(self, url, **kwargs):
        return self._next("GET", url, kwargs)

    def close(self):
        self.closed = True


def completion_body(content="Hello there", model="deepseek-chat", usage=None, reasoning=None):
    message = {"role": "assistant", "content": content}
    if reasoning is not None:
        message["reasoning_content"] = reasoning
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "model": model,
        "choices": [{"index": 0, "message": message, "finish_reason": "stop"}],
        "usage": usage if usage is not None else {
            "prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15,
        },
    }


def sse_lines(*deltas, done=True, usage=None, model="deepseek-chat"):
    """Build SSE lines: one chunk per delta, a finish chunk, optional usage, `[DONE]`."""
    lines = [": keep-alive", ""]
    for delta in deltas:
        chunk = {"model": model, "choices": [{"index": 0, "delta": {"content": delta}, "finish_reason": None}]}
        lines.append("data: " + json.dumps(chunk))
        lines.append("")
    finish = {"model": model, "choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}]}
    lines.append("data: " + json.dumps(finish))
    if usage is not None:
        lines.append("data: " + json.dumps({"model": model, "choices": [], "usage": usage}))
    if done:
        lines.append("data: [DONE]")
    return lines


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in MANAGED_VARIABLES:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def api_env(monkeypatch):
    monkeypatch.setenv("DEEPSEEK_API_KEY", TEST_KEY)
    return monkeypatch


@pytest.fixture
def config():
    return ProviderConfig(api_key=TEST_KEY, model="deepseek-chat", timeout_seconds=30)


@pytest.fixture
def role_configs():
    return resolve_roles({
        "DEEPSEEK_API_KEY": TEST_KEY,
        "GOOSE_LEAD_MODEL": "deepseek-chat",
        "GOOSE_PLANNER_MODEL": "deepseek-reasoner",
    })


@pytest.fixture
def fake():
    """Expose the doubles and payload builders to test modules."""

    class Fakes:
        Response = FakeResponse
        Session = FakeSession
        completion = staticmethod(completion_body)
        sse = staticmethod(sse_lines)
        key = TEST_KEY

    return Fakes
