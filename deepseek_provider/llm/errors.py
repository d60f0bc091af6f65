"""Error taxonomy for provider configuration and chat-completion transport.

Architectural role:
    Shared by `provider_config` (resolution-time failures) and `client` /
    `stream` (per-request failures). Adapters in `deepseek_provider.api`
    translate these into exit codes or HTTP statuses.

Hierarchy:
    ProviderError
    ├── ConfigError            raised once, at startup / role resolution
    └── ClientError            raised per call, never retried

Failure behavior:
    Core modules raise; nothing here is converted into return values.
"""


class ProviderError(Exception):
    """Base class for every error raised by this package."""


# =========================================================
# CONFIGURATION ERRORS
# =========================================================

class ConfigError(ProviderError):
    """Provider configuration could not be resolved from the environment."""


class MissingApiKeyError(ConfigError):
    """Required API key variable is unset or blank."""

    def __init__(self, variable: str):
        super().__init__(f"{variable} is not set. Export it before starting a session.")
        self.variable = variable


class InvalidTimeoutError(ConfigError):
    """Timeout variable is present but not a positive integer."""

    def __init__(self, variable: str, value: str):
        super().__init__(f"{variable} must be a positive integer number of seconds, got {value!r}")
        self.variable = variable
        self.value = value


class InvalidHostError(ConfigError):
    """Host variable is not an absolute http(s) URL."""

    def __init__(self, variable: str, value: str):
        super().__init__(f"{variable} must be an absolute http(s) URL, got {value!r}")
        self.variable = variable
        self.value = value


class UnknownProviderError(ConfigError):
    """A role selects a provider that is not registered."""

    def __init__(self, provider: str, known):
        super().__init__(
            f"Unknown provider {provider!r}. Choose from: {', '.join(sorted(known))}"
        )
        self.provider = provider


# =========================================================
# CLIENT ERRORS
# =========================================================

class ClientError(ProviderError):
    """A single chat-completion call failed."""


class RequestTimeoutError(ClientError):
    """No response (or no further stream data) within the configured timeout."""

    def __init__(self, url: str, timeout_seconds: int):
        super().__init__(f"Request to {url} timed out after {timeout_seconds}s")
        self.url = url
        self.timeout_seconds = timeout_seconds


class UnauthorizedError(ClientError):
    """Upstream rejected the credential (HTTP 401 or 403)."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"HTTP {status_code}: credential rejected by provider")
        self.status_code = status_code
        self.body = body


class RemoteError(ClientError):
    """Upstream answered with a non-2xx status other than 401/403."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"HTTP {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class MalformedResponseError(ClientError):
    """Response body does not match the chat-completion schema."""


class RequestFailedError(ClientError):
    """Transport-level failure before any HTTP status was received."""


class UnsupportedOperationError(ClientError):
    """Operation is not offered by the selected provider."""
