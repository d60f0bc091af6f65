"""Normalized response contracts returned by `deepseek_provider.llm.client`.

Architectural role:
    Decouples callers from the upstream JSON layout. Adapters read `text`,
    `usage` and `finish_reason` and never index into raw provider payloads.
"""

from dataclasses import dataclass, field


@dataclass
class Usage:
    """Token counters reported by the provider (zero when not reported)."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_dict(cls, data) -> "Usage":
        """Build from an OpenAI-style `usage` object, ignoring non-integer fields."""
        if not isinstance(data, dict):
            return cls()

        def count(name):
            value = data.get(name)
            return value if isinstance(value, int) and not isinstance(value, bool) else 0

        prompt_tokens = count("prompt_tokens")
        completion_tokens = count("completion_tokens")
        total_tokens = count("total_tokens") or prompt_tokens + completion_tokens
        return cls(prompt_tokens, completion_tokens, total_tokens)

    def to_dict(self) -> dict:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class ChatResponse:
    """Completed (non-streamed) chat completion.

    Attributes:
        text: Assistant message content.
        model: Model id echoed by the provider, or the requested one.
        finish_reason: Upstream finish reason (`stop`, `length`, ...), may be empty.
        usage: Token counters.
        reasoning: `reasoning_content` emitted by reasoning models, else empty.
        raw: Parsed upstream JSON for diagnostics.
    """

    text: str
    model: str
    finish_reason: str = ""
    usage: Usage = field(default_factory=Usage)
    reasoning: str = ""
    raw: dict = field(default_factory=dict, repr=False)
