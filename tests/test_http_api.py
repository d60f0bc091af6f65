import asyncio
import json

import pytest
import requests
from fastapi.testclient import TestClient

from deepseek_provider.api.http_api import create_app, relay, stream_events
from deepseek_provider.llm.stream import ChatStream


@pytest.fixture
def make_client(role_configs):
    def build(session=None):
        return TestClient(create_app(role_configs, session=session))
    return build


def chat_body(model="lead", stream=False, **extra):
    return {"model": model, "messages": [{"role": "user", "content": "Hi"}], "stream": stream, **extra}


def data_frames(text):
    return [line[len("data: "):] for line in text.splitlines() if line.startswith("data: ")]


def test_models_lists_roles_and_model_ids(make_client):
    response = make_client().get("/v1/models")
    assert response.status_code == 200
    ids = [entry["id"] for entry in response.json()["data"]]
    assert ids == ["lead", "planner", "deepseek-chat", "deepseek-reasoner"]


def test_non_stream_completion(make_client, fake):
    session = fake.Session(fake.Response(json_data=fake.completion("Hello!")))
    response = make_client(session).post("/v1/chat/completions", json=chat_body(temperature=0.1))

    assert response.status_code == 200
    body = response.json()
    assert body["object"] == "chat.completion"
    assert body["choices"][0]["message"] == {"role": "assistant", "content": "Hello!"}
    assert body["usage"]["total_tokens"] == 15
    sent = session.calls[0]["json"]
    assert sent["model"] == "deepseek-chat"
    assert sent["temperature"] == 0.1


def test_model_id_selects_planner(make_client, fake):
    session = fake.Session(fake.Response(json_data=fake.completion(model="deepseek-reasoner")))
    response = make_client(session).post("/v1/chat/completions", json=chat_body(model="deepseek-reasoner"))
    assert response.status_code == 200
    assert session.calls[0]["json"]["model"] == "deepseek-reasoner"


def test_stream_reemits_chunks_and_done(make_client, fake):
    usage = {"prompt_tokens": 1, "completion_tokens": 2, "total_tokens": 3}
    session = fake.Session(fake.Response(lines=fake.sse("a", "b", "c", usage=usage)))
    response = make_client(session).post("/v1/chat/completions", json=chat_body(stream=True))

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    frames = data_frames(response.text)
    assert frames[-1] == "[DONE]"
    chunks = [json.loads(frame) for frame in frames[:-1]]
    content = "".join(chunk["choices"][0]["delta"].get("content", "") for chunk in chunks)
    assert content == "abc"
    assert chunks[-1]["choices"][0]["finish_reason"] == "stop"
    assert chunks[-1]["usage"]["total_tokens"] == 3


def test_stream_failure_after_start_emits_error_frame(make_client, fake):
    session = fake.Session(fake.Response(lines=fake.sse("a", done=False)))
    response = make_client(session).post("/v1/chat/completions", json=chat_body(stream=True))

    frames = data_frames(response.text)
    assert frames[-1] == "[DONE]"
    assert json.loads(frames[-2])["error"]["type"] == "MalformedResponseError"


@pytest.mark.parametrize("upstream,expected", [
    (401, 401),
    (403, 401),
    (500, 502),
])
def test_upstream_status_mapping(make_client, fake, upstream, expected):
    session = fake.Session(fake.Response(status_code=upstream, text="upstream says no"))
    response = make_client(session).post("/v1/chat/completions", json=chat_body())
    assert response.status_code == expected


def test_remote_error_carries_upstream_details(make_client, fake):
    session = fake.Session(fake.Response(status_code=500, text="upstream says no"))
    response = make_client(session).post("/v1/chat/completions", json=chat_body())
    error = response.json()["error"]
    assert error["upstream_status"] == 500
    assert error["upstream_body"] == "upstream says no"


def test_timeout_maps_to_gateway_timeout(make_client, fake):
    session = fake.Session(requests.exceptions.ReadTimeout("slow"))
    response = make_client(session).post("/v1/chat/completions", json=chat_body())
    assert response.status_code == 504


@pytest.mark.parametrize("body", [
    {"messages": [{"role": "user", "content": "Hi"}]},
    {"model": "lead"},
    {"model": "lead", "messages": [{"role": "user"}]},
])
def test_invalid_requests(make_client, body):
    response = make_client().post("/v1/chat/completions", json=body)
    assert response.status_code == 400


def test_unknown_model(make_client):
    response = make_client().post("/v1/chat/completions", json=chat_body(model="gpt-4o"))
    assert response.status_code == 400
    assert "gpt-4o" in response.json()["error"]["message"]


def test_unsupported_message_role(make_client, fake):
    session = fake.Session()
    body = {"model": "lead", "messages": [{"role": "tool", "content": "x"}]}
    response = make_client(session).post("/v1/chat/completions", json=body)
    assert response.status_code == 400
    assert session.calls == []


def test_invalid_json_body(make_client):
    response = make_client().post(
        "/v1/chat/completions", content=b"{oops", headers={"content-type": "application/json"},
    )
    assert response.status_code == 400


def test_stream_events_closed_early_releases_upstream(fake):
    response = fake.Response(lines=fake.sse("a", "b"))
    upstream = ChatStream(response, "https://api.deepseek.com/v1/chat/completions", "deepseek-chat", 30)
    events = stream_events(upstream, "chatcmpl-1", 0, "deepseek-chat")

    assert json.loads(data_frames(next(events))[0])["choices"][0]["delta"] == {"role": "assistant"}
    events.close()

    assert upstream.closed
    assert response.closed


def test_relay_cancellation_closes_events(fake):
    response = fake.Response(lines=fake.sse("a", "b"))
    upstream = ChatStream(response, "https://api.deepseek.com/v1/chat/completions", "deepseek-chat", 30)
    frames = relay(stream_events(upstream, "chatcmpl-1", 0, "deepseek-chat"))

    async def take_one():
        first = await frames.__anext__()
        await frames.aclose()
        return first

    assert data_frames(asyncio.run(take_one()))
    assert response.closed
