"""Classification of GitHub API failures and a retry helper for them."""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

import requests
from github import GithubException, RateLimitExceededException

logger = logging.getLogger(__name__)

T = TypeVar("T")

_NETWORK_ERRORS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    ConnectionError,
    TimeoutError,
)


def get_error_status(error: BaseException) -> int | None:
    """HTTP status of a PyGithub error, or None for anything else."""
    if isinstance(error, GithubException):
        return error.status
    return None


def _header(error: GithubException, name: str) -> str | None:
    headers = error.headers or {}
    for key, value in headers.items():
        if key.lower() == name and value is not None:
            return str(value)
    return None


def is_rate_limit_error(error: BaseException) -> bool:
    """True when a 403/429 comes from rate limiting rather than a permission denial."""
    if isinstance(error, RateLimitExceededException):
        return True
    status = get_error_status(error)
    if status not in (403, 429):
        return False
    if _header(error, "x-ratelimit-remaining") == "0" or _header(error, "retry-after"):
        return True
    return "rate limit" in str(error).lower()


def is_transient_error(error: BaseException) -> bool:
    """Network failures, 429, 5xx and rate-limited 403s are worth retrying."""
    if isinstance(error, _NETWORK_ERRORS):
        return True
    status = get_error_status(error)
    if status is not None and (status == 429 or status >= 500):
        return True
    return is_rate_limit_error(error)


def with_retry(
    operation: Callable[[], T],
    max_retries: int = 3,
    description: str = "GitHub operation",
) -> T:
    """Call *operation*, retrying transient failures with exponential backoff.

    Non-transient errors and the final transient failure propagate.
    """
    for attempt in range(max_retries):
        try:
            return operation()
        except Exception as e:
            if not is_transient_error(e) or attempt == max_retries - 1:
                raise
            delay = 2**attempt
            logger.warning(
                "%s failed (attempt %d/%d): %s. Retrying in %ds...",
                description,
                attempt + 1,
                max_retries,
                e,
                delay,
            )
            time.sleep(delay)
    raise RuntimeError("with_retry called with max_retries < 1")
