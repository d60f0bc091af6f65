"""Provider/runtime configuration for the LLM layer.

Architectural role:
    Centralizes provider selection, model-per-role selection and credential lookup
    for `deepseek_provider.llm.client` and `deepseek_provider.llm.service`.

Model call flow integration:
    - `service.LLMService` consumes `RoleConfigs` built once by `resolve_roles`.
    - `client.ChatCompletionClient` consumes a single `ProviderConfig`.

Determinism:
    `resolve` is a pure function of the mapping it is given (`os.environ` by
    default). Nothing is read at import time and no `.env` file is loaded here;
    adapters call `load_dotenv()` before resolving.

Failure behavior:
    Every problem is raised as a `ConfigError` subclass at resolution time, so a
    misconfigured process fails before the first request is issued.
"""

import os
import re
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import urlparse

from deepseek_provider.llm.errors import (
    InvalidHostError,
    InvalidTimeoutError,
    MissingApiKeyError,
    UnknownProviderError,
)


class Role(str, Enum):
    """Logical model roles, each independently configurable."""

    LEAD = "lead"
    PLANNER = "planner"


# =========================================================
# PROVIDER METADATA
# =========================================================

@dataclass(frozen=True)
class ConfigKey:
    """One configuration variable a provider understands."""

    name: str
    required: bool
    secret: bool
    default: str | None = None


@dataclass(frozen=True)
class ProviderMetadata:
    """Static description of a registered provider."""

    id: str
    display_name: str
    description: str
    default_model: str
    known_models: tuple
    doc_url: str
    config_keys: tuple


DEEPSEEK_DEFAULT_HOST = "https://api.deepseek.com"
DEEPSEEK_DEFAULT_BASE_PATH = "v1/chat/completions"
DEEPSEEK_DEFAULT_TIMEOUT = 600
# Largest value socket.settimeout accepts on every platform.
DEEPSEEK_MAX_TIMEOUT = int(threading.TIMEOUT_MAX)

DEEPSEEK = ProviderMetadata(
    id="deepseek",
    display_name="DeepSeek",
    description="DeepSeek V3 and R1 models with advanced reasoning capabilities",
    default_model="deepseek-chat",
    known_models=(
        "deepseek-chat",      # DeepSeek-V3, lead model
        "deepseek-reasoner",  # DeepSeek-R1, planner model
    ),
    doc_url="https://platform.deepseek.com/api-docs",
    config_keys=(
        ConfigKey("DEEPSEEK_API_KEY", required=True, secret=True),
        ConfigKey("DEEPSEEK_HOST", required=True, secret=False, default=DEEPSEEK_DEFAULT_HOST),
        ConfigKey("DEEPSEEK_BASE_PATH", required=True, secret=False, default=DEEPSEEK_DEFAULT_BASE_PATH),
        ConfigKey("DEEPSEEK_CUSTOM_HEADERS", required=False, secret=True),
        ConfigKey("DEEPSEEK_TIMEOUT", required=False, secret=False, default=str(DEEPSEEK_DEFAULT_TIMEOUT)),
    ),
)

# Registered providers, keyed by the value accepted in GOOSE_*_PROVIDER.
PROVIDERS = {
    DEEPSEEK.id: DEEPSEEK,
}

DEFAULT_PROVIDER = DEEPSEEK.id

# Role-specific overrides, checked before the shared GOOSE_PROVIDER / GOOSE_MODEL.
ROLE_VARIABLES = {
    Role.LEAD: ("GOOSE_LEAD_PROVIDER", "GOOSE_LEAD_MODEL"),
    Role.PLANNER: ("GOOSE_PLANNER_PROVIDER", "GOOSE_PLANNER_MODEL"),
}


# =========================================================
# RESOLVED CONFIGURATION
# =========================================================

@dataclass(frozen=True)
class ProviderConfig:
    """Everything needed to reach the chat-completion endpoint for one role.

    Built once per role by `resolve` and read-only thereafter. The API key is
    excluded from `repr` so configs can be logged safely.
    """

    api_key: str = field(repr=False)
    model: str
    host: str = DEEPSEEK_DEFAULT_HOST
    base_path: str = DEEPSEEK_DEFAULT_BASE_PATH
    timeout_seconds: int = DEEPSEEK_DEFAULT_TIMEOUT
    provider: str = DEFAULT_PROVIDER
    role: Role = Role.LEAD
    custom_headers: Mapping = field(default_factory=dict, repr=False, hash=False)

    @property
    def url(self) -> str:
        """Endpoint URL with exactly one slash between host and base path."""
        return join_url(self.host, self.base_path)

    def masked_api_key(self) -> str:
        """Short display form of the key, e.g. `sk-07...4cb`."""
        return mask_secret(self.api_key)


def join_url(host: str, path: str) -> str:
    return f"{host.rstrip('/')}/{path.lstrip('/')}"


def mask_secret(secret: str) -> str:
    if len(secret) <= 8:
        return "*" * len(secret)
    return f"{secret[:5]}...{secret[-3:]}"


class RoleConfigs(Mapping):
    """Read-only mapping of `Role` to its resolved `ProviderConfig`."""

    def __init__(self, configs: dict):
        self._configs = dict(configs)

    def __getitem__(self, role):
        return self._configs[Role(role)]

    def __iter__(self):
        return iter(self._configs)

    def __len__(self):
        return len(self._configs)

    def __repr__(self):
        return f"RoleConfigs({self._configs!r})"


# =========================================================
# RESOLUTION
# =========================================================

def _read(env: Mapping, name: str) -> str | None:
    """Return the stripped variable value, treating blank values as unset."""
    value = env.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def parse_custom_headers(text: str) -> dict:
    """Parse `Key=Value,Key2=Value2` into a header dict.

    Pairs without `=` are ignored; keys and values are stripped.
    """
    headers = {}
    for pair in text.split(","):
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            continue
        headers[key.strip()] = value.strip()
    return headers


def parse_timeout(name: str, value: str | None) -> int:
    if value is None:
        return DEEPSEEK_DEFAULT_TIMEOUT
    if not re.fullmatch(r"[0-9]+", value):
        raise InvalidTimeoutError(name, value)
    seconds = int(value)
    if seconds <= 0 or seconds > DEEPSEEK_MAX_TIMEOUT:
        raise InvalidTimeoutError(name, value)
    return seconds


def validate_host(name: str, value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidHostError(name, value)
    return value


def resolve_provider(role: Role, env: Mapping) -> ProviderMetadata:
    """Pick the provider for `role`: role override, then GOOSE_PROVIDER, then default."""
    provider_var, _ = ROLE_VARIABLES[role]
    provider = (_read(env, provider_var) or _read(env, "GOOSE_PROVIDER") or DEFAULT_PROVIDER).lower()
    metadata = PROVIDERS.get(provider)
    if metadata is None:
        raise UnknownProviderError(provider, PROVIDERS)
    return metadata


def resolve_model(role: Role, env: Mapping, metadata: ProviderMetadata) -> str:
    """Pick the model for `role`: role override, then GOOSE_MODEL, then provider default."""
    _, model_var = ROLE_VARIABLES[role]
    return _read(env, model_var) or _read(env, "GOOSE_MODEL") or metadata.default_model


def resolve(role=Role.LEAD, env: Mapping | None = None) -> ProviderConfig:
    """Resolve the provider configuration for one role.

    Args:
        role: `Role` or its string value (`"lead"` / `"planner"`).
        env: Variable mapping to read from; defaults to `os.environ`.

    Returns:
        Immutable `ProviderConfig`.

    Resolution order:
        1. API key (fatal when missing, checked before anything else).
        2. Provider and model for the role.
        3. Host, base path, timeout and custom headers with documented defaults.

    Failure scenarios:
        - `MissingApiKeyError` for an unset or blank `DEEPSEEK_API_KEY`.
        - `InvalidTimeoutError` for a timeout that is not a positive integer.
        - `InvalidHostError` for a host that is not an http(s) URL.
        - `UnknownProviderError` for an unregistered provider id.
    """
    env = os.environ if env is None else env
    role = Role(role)

    api_key = _read(env, "DEEPSEEK_API_KEY")
    if not api_key:
        raise MissingApiKeyError("DEEPSEEK_API_KEY")

    metadata = resolve_provider(role, env)
    model = resolve_model(role, env, metadata)

    host = validate_host("DEEPSEEK_HOST", _read(env, "DEEPSEEK_HOST") or DEEPSEEK_DEFAULT_HOST)
    base_path = _read(env, "DEEPSEEK_BASE_PATH") or DEEPSEEK_DEFAULT_BASE_PATH
    timeout_seconds = parse_timeout("DEEPSEEK_TIMEOUT", _read(env, "DEEPSEEK_TIMEOUT"))

    raw_headers = _read(env, "DEEPSEEK_CUSTOM_HEADERS")
    custom_headers = parse_custom_headers(raw_headers) if raw_headers else {}

    return ProviderConfig(
        api_key=api_key,
        model=model,
        host=host,
        base_path=base_path,
        timeout_seconds=timeout_seconds,
        provider=metadata.id,
        role=role,
        custom_headers=custom_headers,
    )


def resolve_roles(env: Mapping | None = None) -> RoleConfigs:
    """Resolve every role once; the result is passed to collaborators."""
    env = os.environ if env is None else env
    return RoleConfigs({role: resolve(role, env) for role in Role})
