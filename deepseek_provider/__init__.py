"""DeepSeek provider for OpenAI-compatible chat completions.

Architectural role:
    Resolves per-role provider configuration from the environment and issues
    chat-completion requests (single JSON or streamed) against the configured
    endpoint.

Package split:
    - `llm`: configuration, transport client, streaming and role service.
    - `api`: CLI and HTTP proxy adapters over `llm`.
"""

from deepseek_provider.llm import (
    ChatCompletionClient,
    ChatResponse,
    ChatStream,
    LLMService,
    ProviderConfig,
    Role,
    RoleConfigs,
    resolve,
    resolve_roles,
)

__version__ = "0.1.0"

__all__ = [
    "ChatCompletionClient",
    "ChatResponse",
    "ChatStream",
    "LLMService",
    "ProviderConfig",
    "Role",
    "RoleConfigs",
    "resolve",
    "resolve_roles",
]
