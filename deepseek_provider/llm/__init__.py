"""LLM access package.

Architectural role:
    Provides provider configuration, request-payload construction, and transport
    adapters used by the adapter layer to invoke chat-completion backends.

Module split:
    - `provider_config`: environment-driven provider, model and role configuration.
    - `errors`: `ConfigError` / `ClientError` taxonomy.
    - `client`: HTTP transport and non-stream response parsing.
    - `stream`: incremental SSE consumption.
    - `service`: role-aware prompt-to-payload adapter.
"""

from deepseek_provider.llm.client import ChatCompletionClient
from deepseek_provider.llm.provider_config import (
    ProviderConfig,
    Role,
    RoleConfigs,
    resolve,
    resolve_roles,
)
from deepseek_provider.llm.response_types import ChatResponse, Usage
from deepseek_provider.llm.service import LLMService
from deepseek_provider.llm.stream import ChatStream

__all__ = [
    "ChatCompletionClient",
    "ChatResponse",
    "ChatStream",
    "LLMService",
    "ProviderConfig",
    "Role",
    "RoleConfigs",
    "Usage",
    "resolve",
    "resolve_roles",
]
