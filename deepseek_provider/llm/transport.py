"""HTTP transport helpers shared by `client` and `stream`.

Architectural role:
    Owns the translation from `requests` outcomes (status codes and
    exceptions) to the `ClientError` taxonomy so the streaming and
    non-streaming paths fail identically.

Retry behavior:
    None. Every helper here reports the first failure.
"""

import logging

import requests
from urllib3.exceptions import ReadTimeoutError

from deepseek_provider.llm.errors import (
    ClientError,
    RemoteError,
    RequestFailedError,
    RequestTimeoutError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)

UNAUTHORIZED_STATUSES = (401, 403)


def is_timeout(err: requests.exceptions.RequestException) -> bool:
    """Detect timeouts, including read timeouts surfaced while iterating a body.

    `requests` re-raises a mid-body `ReadTimeoutError` as `ConnectionError`.
    """
    if isinstance(err, requests.exceptions.Timeout):
        return True
    return bool(err.args) and isinstance(err.args[0], ReadTimeoutError)


def translate_exception(
    err: requests.exceptions.RequestException,
    url: str,
    timeout_seconds: int,
) -> ClientError:
    """Map a `requests` exception to the matching `ClientError`."""
    if is_timeout(err):
        return RequestTimeoutError(url, timeout_seconds)
    return RequestFailedError(f"Request to {url} failed: {err.__class__.__name__}: {err}")


def check_status(response: requests.Response) -> None:
    """Raise for any non-2xx response, carrying the upstream body verbatim.

    Error handling:
        - 401 / 403 -> `UnauthorizedError`
        - any other non-2xx -> `RemoteError`
    """
    status = response.status_code
    if 200 <= status < 300:
        return

    body = response.text
    logger.warning("Provider returned HTTP %s for %s", status, response.url)
    if status in UNAUTHORIZED_STATUSES:
        raise UnauthorizedError(status, body)
    raise RemoteError(status, body)
