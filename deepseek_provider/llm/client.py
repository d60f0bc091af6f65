"""OpenAI-compatible chat-completion client for a resolved provider config.

Architectural role:
    Executes HTTP requests against the endpoint described by a `ProviderConfig`
    and normalizes the result for streaming and non-streaming paths.

Model invocation flow:
    `service.LLMService.generate_answer` -> `ChatCompletionClient.send(messages, stream)`
    -> POST `{host}/{base_path}` -> `ChatResponse` or `ChatStream`.

Request shape:
    - Headers: `Authorization: Bearer <api_key>`, `Content-Type: application/json`
      plus configured custom headers (which can never replace `Authorization`).
    - Body: `{model, messages, stream}` plus optional generation parameters.
      Streamed requests also ask for a trailing usage chunk.

Retry behavior:
    No retry loop is implemented. Each call is attempted once with the configured
    timeout.

Failure handling model:
    Failures are raised as `ClientError` subclasses (see `llm.errors`); nothing
    is converted into in-band error strings.
"""

import logging
import time
from collections.abc import Mapping

import requests

from deepseek_provider.llm.errors import (
    MalformedResponseError,
    UnauthorizedError,
    UnsupportedOperationError,
)
from deepseek_provider.llm.provider_config import ProviderConfig, join_url
from deepseek_provider.llm.response_types import ChatResponse, Usage
from deepseek_provider.llm.stream import ChatStream
from deepseek_provider.llm.transport import check_status, translate_exception

logger = logging.getLogger(__name__)

MESSAGE_ROLES = ("system", "user", "assistant")

# Optional generation parameters forwarded unchanged when supplied.
GENERATION_PARAMS = {
    "temperature", "top_p", "max_tokens", "stop",
    "presence_penalty", "frequency_penalty", "response_format", "seed",
}

MODELS_PATH = "v1/models"


def normalize_messages(messages) -> list:
    """Validate role-tagged messages and copy them into plain dicts.

    Raises:
        ValueError: For an empty sequence, a non-mapping entry, an unknown role
            or non-string content.
    """
    normalized = []
    for index, message in enumerate(messages):
        if not isinstance(message, Mapping):
            raise ValueError(f"Message {index} is not a mapping")
        role = message.get("role")
        content = message.get("content")
        if role not in MESSAGE_ROLES:
            raise ValueError(f"Message {index} has unsupported role {role!r}")
        if not isinstance(content, str):
            raise ValueError(f"Message {index} content must be a string")
        normalized.append({"role": role, "content": content})

    if not normalized:
        raise ValueError("At least one message is required")
    return normalized


def parse_completion(data, requested_model: str) -> ChatResponse:
    """Extract message text, finish reason and usage from a completion object."""
    if not isinstance(data, dict):
        raise MalformedResponseError("Completion body is not a JSON object")

    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        raise MalformedResponseError("Completion has no choices")

    choice = choices[0]
    message = choice.get("message") if isinstance(choice, dict) else None
    if not isinstance(message, dict):
        raise MalformedResponseError("Completion choice has no message")

    content = message.get("content")
    if content is None:
        content = ""
    if not isinstance(content, str):
        raise MalformedResponseError("Completion message content is not a string")

    if "usage" in data and not isinstance(data["usage"], dict):
        logger.debug("Ignoring non-object usage in completion: %r", data["usage"])

    reasoning = message.get("reasoning_content")

    return ChatResponse(
        text=content,
        model=data.get("model") if isinstance(data.get("model"), str) else requested_model,
        finish_reason=choice.get("finish_reason") or "",
        usage=Usage.from_dict(data.get("usage")),
        reasoning=reasoning if isinstance(reasoning, str) else "",
        raw=data,
    )


class ChatCompletionClient:
    """Client bound to one `ProviderConfig` (one role).

    Args:
        config: Resolved provider configuration.
        session: Optional `requests.Session`-compatible object; a new session
            is created when omitted.
    """

    supports_embeddings = False

    def __init__(self, config: ProviderConfig, session=None):
        self.config = config
        self.session = session if session is not None else requests.Session()

    # -----------------------------------------------------
    # Request assembly
    # -----------------------------------------------------

    def build_headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        for key, value in self.config.custom_headers.items():
            if key.lower() != "authorization":
                headers[key] = value
        headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def build_payload(self, messages, stream: bool, **params) -> dict:
        unknown = sorted(set(params) - GENERATION_PARAMS)
        if unknown:
            raise ValueError(f"Unsupported generation parameter(s): {', '.join(unknown)}")

        payload = {
            "model": self.config.model,
            "messages": normalize_messages(messages),
            "stream": bool(stream),
        }
        payload.update({k: v for k, v in params.items() if v is not None})
        if stream:
            payload["stream_options"] = {"include_usage": True}
        return payload

    # -----------------------------------------------------
    # Chat completions
    # -----------------------------------------------------

    def send(self, messages, stream: bool = False, **params):
        """Send one chat-completion request.

        Args:
            messages: Ordered role-tagged messages (`system` / `user` / `assistant`).
            stream: When true, return a `ChatStream` of text fragments.
            **params: Optional generation parameters (`temperature`, `max_tokens`, ...).

        Returns:
            `ChatResponse` for non-stream calls, `ChatStream` otherwise.

        Failure scenarios:
            - `RequestTimeoutError` when no response arrives in time.
            - `UnauthorizedError` on HTTP 401/403.
            - `RemoteError` on other non-2xx statuses (status and body attached).
            - `MalformedResponseError` when the body does not fit the schema.
            - `RequestFailedError` for connection-level failures.
        """
        payload = self.build_payload(messages, stream, **params)
        url = self.config.url

        logger.info(
            "Chat completion request: role=%s model=%s stream=%s messages=%d",
            self.config.role.value, self.config.model, payload["stream"], len(payload["messages"]),
        )

        started = time.monotonic()
        response = self._post(url, payload, stream)

        if stream:
            response.encoding = "utf-8"
            return ChatStream(response, url, self.config.model, self.config.timeout_seconds)

        try:
            data = response.json()
        except ValueError as err:
            raise MalformedResponseError(f"Completion body is not valid JSON: {response.text[:200]!r}") from err

        result = parse_completion(data, self.config.model)
        logger.info(
            "Chat completion finished in %.2fs: model=%s tokens=%d",
            time.monotonic() - started, result.model, result.usage.total_tokens,
        )
        return result

    def _post(self, url: str, payload: dict, stream: bool) -> requests.Response:
        try:
            response = self.session.post(
                url,
                headers=self.build_headers(),
                json=payload,
                stream=stream,
                timeout=self.config.timeout_seconds,
            )
        except requests.exceptions.RequestException as err:
            raise translate_exception(err, url, self.config.timeout_seconds) from err

        try:
            check_status(response)
        except Exception:
            response.close()
            raise
        return response

    # -----------------------------------------------------
    # Auxiliary provider operations
    # -----------------------------------------------------

    def fetch_supported_models(self) -> list:
        """Return the sorted model ids advertised by `GET {host}/v1/models`."""
        url = join_url(self.config.host, MODELS_PATH)
        headers = self.build_headers()
        headers.pop("Content-Type")

        try:
            response = self.session.get(url, headers=headers, timeout=self.config.timeout_seconds)
        except requests.exceptions.RequestException as err:
            raise translate_exception(err, url, self.config.timeout_seconds) from err

        check_status(response)

        try:
            data = response.json()
        except ValueError as err:
            raise MalformedResponseError("Model list body is not valid JSON") from err

        if isinstance(data, dict) and "error" in data:
            error = data["error"]
            message = error.get("message", "unknown error") if isinstance(error, dict) else str(error)
            raise UnauthorizedError(response.status_code, message)

        models = data.get("data") if isinstance(data, dict) else None
        if not isinstance(models, list):
            raise MalformedResponseError("Missing data field in model list response")

        return sorted(
            item["id"] for item in models
            if isinstance(item, dict) and isinstance(item.get("id"), str)
        )

    def create_embeddings(self, texts):
        raise UnsupportedOperationError(
            f"{self.config.provider} does not support embeddings"
        )

    def close(self) -> None:
        self.session.close()
