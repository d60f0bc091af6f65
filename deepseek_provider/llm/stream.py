"""Incremental consumption of OpenAI-compatible SSE chat streams.

Architectural role:
    Wraps an open `requests.Response` (issued with `stream=True`) and exposes it
    as a lazy, finite, non-restartable iterator of text fragments. Callers
    concatenate fragments (or read `ChatStream.text`) to rebuild the message.

Wire format:
    - One event per `data: <json>` line, each a `chat.completion.chunk`.
    - Blank lines, `:` keep-alive comments and other SSE fields are skipped.
    - `data: [DONE]` is the explicit end marker and sets `done`.
    - With `stream_options.include_usage` the last chunk has empty `choices`
      and a `usage` object.

Failure behavior:
    - Non-JSON data lines or chunks outside the schema -> `MalformedResponseError`.
    - Body closed before `[DONE]` -> `MalformedResponseError`.
    - Stalls longer than the timeout -> `RequestTimeoutError`.
    The HTTP response is closed on exhaustion, on error and on `close()`.
"""

import json
import logging

import requests

from deepseek_provider.llm.errors import MalformedResponseError
from deepseek_provider.llm.response_types import ChatResponse, Usage
from deepseek_provider.llm.transport import translate_exception

logger = logging.getLogger(__name__)

DONE_MARKER = "[DONE]"


class ChatStream:
    """Lazy sequence of assistant text fragments from one streamed request."""

    def __init__(self, response: requests.Response, url: str, model: str, timeout_seconds: int):
        self._response = response
        self._url = url
        self._timeout_seconds = timeout_seconds
        self._fragments = []
        self._reasoning = []
        self._events = self._iter_fragments()

        self.model = model
        self.finish_reason = ""
        self.usage = Usage()
        self.done = False
        self.closed = False

    # -----------------------------------------------------
    # Iterator protocol
    # -----------------------------------------------------

    def __iter__(self):
        return self

    def __next__(self) -> str:
        return next(self._events)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # -----------------------------------------------------
    # Accumulated state
    # -----------------------------------------------------

    @property
    def text(self) -> str:
        """Concatenation of every fragment yielded so far."""
        return "".join(self._fragments)

    @property
    def reasoning(self) -> str:
        return "".join(self._reasoning)

    def collect(self) -> ChatResponse:
        """Drain the stream and return the equivalent `ChatResponse`."""
        for _ in self:
            pass
        return ChatResponse(
            text=self.text,
            model=self.model,
            finish_reason=self.finish_reason,
            usage=self.usage,
            reasoning=self.reasoning,
        )

    def close(self) -> None:
        """Stop consuming and release the connection; safe to call repeatedly."""
        if self.closed:
            return
        self.closed = True
        self._events.close()
        self._response.close()
        if not self.done:
            logger.debug("Stream from %s closed before end marker", self._url)

    # -----------------------------------------------------
    # Parsing
    # -----------------------------------------------------

    def _iter_fragments(self):
        try:
            # Split on raw bytes: str.splitlines would also break on U+2028 and
            # friends, which may appear unescaped inside JSON strings.
            for raw_line in self._response.iter_lines():
                line = raw_line
                if isinstance(line, bytes):
                    line = line.decode("utf-8", errors="replace")

                if not line or line.startswith(":"):
                    continue

                if not line.startswith("data:"):
                    continue

                data = line[5:].strip()

                if data == DONE_MARKER:
                    self.done = True
                    logger.info(
                        "Stream completed: model=%s chars=%d finish_reason=%s",
                        self.model, len(self.text), self.finish_reason or "-",
                    )
                    return

                fragment = self._absorb(data)
                if fragment:
                    self._fragments.append(fragment)
                    yield fragment

        except requests.exceptions.RequestException as err:
            raise translate_exception(err, self._url, self._timeout_seconds) from err
        finally:
            self.closed = True
            self._response.close()

        raise MalformedResponseError(f"Stream from {self._url} ended without {DONE_MARKER}")

    def _absorb(self, data: str) -> str:
        """Apply one chunk to stream state and return its text delta (may be empty)."""
        try:
            chunk = json.loads(data)
        except ValueError as err:
            raise MalformedResponseError(f"Invalid JSON in stream chunk: {data[:200]!r}") from err

        if not isinstance(chunk, dict):
            raise MalformedResponseError(f"Stream chunk is not an object: {data[:200]!r}")

        if "error" in chunk:
            error = chunk["error"]
            message = error.get("message") if isinstance(error, dict) else error
            raise MalformedResponseError(f"Provider reported an error mid-stream: {message}")

        if isinstance(chunk.get("model"), str):
            self.model = chunk["model"]

        if chunk.get("usage"):
            self.usage = Usage.from_dict(chunk["usage"])

        choices = chunk.get("choices")
        if not isinstance(choices, list):
            raise MalformedResponseError("Stream chunk has no 'choices' list")
        if not choices:
            return ""

        choice = choices[0]
        if not isinstance(choice, dict):
            raise MalformedResponseError("Stream chunk choice is not an object")

        if choice.get("finish_reason"):
            self.finish_reason = choice["finish_reason"]

        delta = choice.get("delta") or {}
        if not isinstance(delta, dict):
            raise MalformedResponseError("Stream chunk delta is not an object")

        reasoning = delta.get("reasoning_content")
        if isinstance(reasoning, str):
            self._reasoning.append(reasoning)

        content = delta.get("content")
        if content is None:
            return ""
        if not isinstance(content, str):
            raise MalformedResponseError("Stream chunk delta content is not a string")
        return content
