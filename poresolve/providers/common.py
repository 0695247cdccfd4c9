"""Shared HTTP plumbing for provider clients."""

from typing import Any, Dict, Optional

import requests

from ..errors import MalformedProviderResponse, ProviderUnavailable
from ..logger import get_logger
from ..retry import RetryError, RetryPolicy, is_transient_error, should_retry_http_status

logger = get_logger()

TRANSIENT_EXCEPTIONS = (
    requests.exceptions.Timeout,
    requests.exceptions.ConnectionError,
    requests.exceptions.HTTPError,
)


def default_policy() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=3,
        base_delay=1.0,
        max_delay=8.0,
        retry_on=TRANSIENT_EXCEPTIONS,
        retry_if=is_transient_error,
    )


def _post_once(url: str, payload: Dict[str, Any], headers: Dict[str, str], timeout: float):
    """One POST; retryable statuses raise so the policy can try again."""
    resp = requests.post(url, json=payload, headers=headers, timeout=timeout)
    if should_retry_http_status(resp.status_code):
        resp.raise_for_status()
    return resp


def post_json(
    url: str,
    payload: Dict[str, Any],
    headers: Dict[str, str],
    timeout: float,
    policy: Optional[RetryPolicy] = None,
    provider: str = "provider",
) -> Dict[str, Any]:
    """POST a JSON payload and return the decoded JSON body.

    Args:
        url: Endpoint URL
        payload: Request body
        headers: Request headers (auth etc.)
        timeout: Per-attempt timeout in seconds
        policy: Retry policy; transient failures are retried under it
        provider: Provider name for logs and metrics

    Raises:
        ProviderUnavailable: On timeouts, connection errors, HTTP errors or exhausted retries
        MalformedProviderResponse: When the body is not JSON
    """
    policy = policy or default_policy()
    logger.record_provider_call()
    try:
        resp = policy.call(_post_once, url, payload, headers, timeout)
        resp.raise_for_status()
    except RetryError as e:
        cause = e.__cause__
        error_type = type(cause).__name__ if cause is not None else "RetryError"
        if isinstance(cause, requests.exceptions.HTTPError) and cause.response is not None:
            error_type = f"HTTPError_{cause.response.status_code}"
        logger.record_provider_failure(provider, error_type)
        logger.warning(f"{provider} retries exhausted", url=url, error=str(cause or e))
        raise ProviderUnavailable(provider, str(cause or e)) from e
    except requests.exceptions.HTTPError as e:
        status = e.response.status_code if e.response is not None else "HTTPError"
        logger.record_provider_failure(provider, f"HTTPError_{status}")
        logger.error(f"{provider} request failed", url=url, status=status)
        raise ProviderUnavailable(provider, f"request failed ({status})") from e
    except requests.exceptions.RequestException as e:
        logger.record_provider_failure(provider, "RequestException")
        logger.error(f"{provider} request error", url=url, error=str(e))
        raise ProviderUnavailable(provider, str(e)) from e

    try:
        return resp.json()
    except ValueError as e:
        logger.record_provider_failure(provider, "MalformedResponse")
        raise MalformedProviderResponse(f"{provider} returned a non-JSON body", raw=resp.text) from e


def auth_headers(api_key: Optional[str], provider: str) -> Dict[str, str]:
    if not api_key:
        logger.record_provider_failure(provider, "MissingApiKey")
        raise ProviderUnavailable(provider, "no API key configured")
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
