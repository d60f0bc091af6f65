"""
OpenAI-compatible HTTP proxy over the configured DeepSeek roles.

Architectural role:
- Expose `/v1/models` and `/v1/chat/completions` locally.
- Enforce adapter-level input validation and role selection.
- Delegate upstream calls to `deepseek_provider.llm.service.LLMService`.
- Normalize results to response transport contracts (JSON or SSE).

Endpoint responsibilities:
- `GET /v1/models`: role aliases (`lead`, `planner`) and configured model ids.
- `POST /v1/chat/completions`: validate input, select the role from `model`,
  forward the conversation and format the result.

Input validation behavior:
- Body not matching `ChatCompletionRequest` -> HTTP 400.
- Unknown `model` -> HTTP 400.
- Unsupported message roles -> HTTP 400.

Error handling strategy:
- `UnauthorizedError` -> 401, `RequestTimeoutError` -> 504,
  `RemoteError` and other `ClientError` -> 502 with upstream details.
- Errors after streaming has started are sent as a final `error` frame
  followed by `[DONE]`; the HTTP status is already committed by then.

Usage:
    uvicorn deepseek_provider.api.http_api:create_app --factory
"""

import json
import logging
import time
import uuid
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ValidationError

from deepseek_provider.llm.errors import (
    ClientError,
    RemoteError,
    RequestTimeoutError,
    UnauthorizedError,
)
from deepseek_provider.llm.provider_config import RoleConfigs, resolve_roles
from deepseek_provider.llm.service import LLMService

logger = logging.getLogger(__name__)


# ============================================================
# Request Schema
# ============================================================

class ChatMessage(BaseModel):
    role: str
    content: str


class ChatCompletionRequest(BaseModel):
    """Accepted subset of the OpenAI chat-completion request."""

    model: str
    messages: list[ChatMessage]
    stream: bool = False
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    stop: str | list[str] | None = None

    def generation_params(self) -> dict:
        params = {
            "temperature": self.temperature,
            "top_p": self.top_p,
            "max_tokens": self.max_tokens,
            "stop": self.stop,
        }
        return {k: v for k, v in params.items() if v is not None}


# ============================================================
# Response Helpers
# ============================================================

def error_response(status_code: int, message: str, **details) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": {"message": message, **details}})


def client_error_response(err: ClientError) -> JSONResponse:
    """Translate a `ClientError` into the proxy's HTTP status contract."""
    if isinstance(err, UnauthorizedError):
        return error_response(401, str(err))
    if isinstance(err, RequestTimeoutError):
        return error_response(504, str(err))
    if isinstance(err, RemoteError):
        return error_response(
            502, "Upstream provider error",
            upstream_status=err.status_code, upstream_body=err.body,
        )
    return error_response(502, str(err))


def sse(data) -> str:
    payload = data if isinstance(data, str) else json.dumps(data)
    return f"data: {payload}\n\n"


def stream_events(upstream, completion_id: str, created: int, model: str):
    """
    Re-emit upstream fragments as `chat.completion.chunk` SSE frames.

    Response formatting:
    - Content chunks carry `delta.content`.
    - Terminal chunk carries `finish_reason` and `usage`.
    - Final sentinel frame is `[DONE]`.
    """

    def chunk(delta, finish_reason=None, usage=None):
        data = {
            "id": completion_id,
            "object": "chat.completion.chunk",
            "created": created,
            "model": model,
            "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
        }
        if usage is not None:
            data["usage"] = usage
        return sse(data)

    try:
        yield chunk({"role": "assistant"})
        for fragment in upstream:
            yield chunk({"content": fragment})
        yield chunk({}, upstream.finish_reason or "stop", upstream.usage.to_dict())
    except ClientError as err:
        logger.error("Upstream stream failed: %s", err)
        yield sse({"error": {"message": str(err), "type": err.__class__.__name__}})
    finally:
        # Also reached when the generator is closed early (client disconnect).
        upstream.close()

    yield sse("[DONE]")


async def relay(events):
    """Drive a blocking frame generator from the event loop.

    Each `next()` runs in the threadpool. Cancellation on client disconnect
    closes `events` right away instead of leaving it to garbage collection.
    """
    try:
        while True:
            frame = await run_in_threadpool(next, events, None)
            if frame is None:
                break
            yield frame
    finally:
        events.close()


# ============================================================
# Application
# ============================================================

def create_app(role_configs: RoleConfigs | None = None, session=None) -> FastAPI:
    """Build the proxy app.

    Args:
        role_configs: Pre-resolved role configurations; resolved from the
            environment (after `load_dotenv()`) when omitted.
        session: Optional `requests.Session`-compatible object shared by the
            role clients.

    Raises:
        ConfigError: When configurations must be resolved and are invalid.
    """
    if role_configs is None:
        load_dotenv()
        role_configs = resolve_roles()

    service = LLMService(role_configs, session=session)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        service.close()

    app = FastAPI(title="deepseek-provider", lifespan=lifespan)
    app.state.service = service

    # ============================================================
    # Model Listing
    # ============================================================

    @app.get("/v1/models")
    def list_models():
        created = int(time.time())
        entries = []
        seen = set()
        for role, config in role_configs.items():
            entries.append({
                "id": role.value,
                "object": "model",
                "created": created,
                "owned_by": config.provider,
                "root": config.model,
            })
        for role, config in role_configs.items():
            if config.model in seen:
                continue
            seen.add(config.model)
            entries.append({
                "id": config.model,
                "object": "model",
                "created": created,
                "owned_by": config.provider,
            })
        return {"object": "list", "data": entries}

    # ============================================================
    # OpenAI-Compatible Chat Completions
    # ============================================================

    @app.post("/v1/chat/completions")
    async def chat_completions(request: Request):
        try:
            body = await request.json()
        except ValueError:
            return error_response(400, "Request body is not valid JSON")

        try:
            chat_request = ChatCompletionRequest.model_validate(body)
        except ValidationError as err:
            return error_response(
                400, "Invalid chat completion request",
                details=err.errors(include_url=False, include_context=False),
            )

        role = service.role_for_model(chat_request.model)
        if role is None:
            return error_response(400, f"Unknown model requested: {chat_request.model}")

        messages = [message.model_dump() for message in chat_request.messages]
        client = service.client(role)

        try:
            result = await run_in_threadpool(
                client.send, messages, chat_request.stream, **chat_request.generation_params()
            )
        except ValueError as err:
            return error_response(400, str(err))
        except ClientError as err:
            return client_error_response(err)

        completion_id = f"chatcmpl-{uuid.uuid4().hex}"
        created = int(time.time())
        model = role_configs[role].model

        if chat_request.stream:
            return StreamingResponse(
                relay(stream_events(result, completion_id, created, model)),
                media_type="text/event-stream",
            )

        return {
            "id": completion_id,
            "object": "chat.completion",
            "created": created,
            "model": result.model,
            "choices": [
                {
                    "index": 0,
                    "message": {"role": "assistant", "content": result.text},
                    "finish_reason": result.finish_reason or "stop",
                }
            ],
            "usage": result.usage.to_dict(),
        }

    return app
