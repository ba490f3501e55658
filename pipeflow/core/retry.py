"""
Retry utilities with exponential backoff using tenacity.
"""

from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Callable, FrozenSet, Optional, Tuple, Type
import logging

import requests
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior of network adapters."""

    max_attempts: int = 3
    min_wait_seconds: float = 1.0
    max_wait_seconds: float = 60.0
    exponential_base: float = 2.0
    retry_exceptions: Tuple[Type[Exception], ...] = field(
        default_factory=lambda: (
            requests.ConnectionError,
            requests.Timeout,
            ConnectionError,
            TimeoutError,
        )
    )
    # HTTP statuses worth another attempt; other 4xx/5xx fail immediately
    retry_statuses: FrozenSet[int] = field(
        default_factory=lambda: frozenset({429, 500, 502, 503, 504})
    )

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.min_wait_seconds < 0:
            raise ValueError("min_wait_seconds must be non-negative")
        if self.max_wait_seconds < self.min_wait_seconds:
            raise ValueError("max_wait_seconds must be >= min_wait_seconds")

    def is_retryable(self, error: BaseException) -> bool:
        if isinstance(error, requests.HTTPError):
            response = error.response
            return response is not None and response.status_code in self.retry_statuses
        return isinstance(error, self.retry_exceptions)


def build_retrying(config: Optional[RetryConfig] = None) -> Retrying:
    """
    Build a tenacity ``Retrying`` controller for ``config``.

    The last exception is re-raised once attempts are exhausted.

    Example:
        retrying = build_retrying(RetryConfig(max_attempts=5))
        response = retrying(session.get, url, timeout=30)
    """
    config = config or RetryConfig()
    return Retrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(
            multiplier=config.min_wait_seconds,
            max=config.max_wait_seconds,
            exp_base=config.exponential_base,
        ),
        retry=retry_if_exception(config.is_retryable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def retry_with_backoff(config: Optional[RetryConfig] = None) -> Callable:
    """
    Decorator factory for retrying functions with exponential backoff.

    Example:
        @retry_with_backoff(RetryConfig(max_attempts=5))
        def fetch_page(page):
            ...
    """
    config = config or RetryConfig()

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            return build_retrying(config)(func, *args, **kwargs)
        return wrapper
    return decorator
