"""
Retry Logic for control-plane calls

Provides a retry decorator with exponential backoff for AWS API calls that
fail transiently (e.g. a freshly created IAM role not yet assumable).
Captures themselves are never retried here; the scheduler re-runs them.

Usage:
    from og_lambda.retry import retry_call, is_role_propagation_error

    retry_call(lambda_client.create_function, retry_if=is_role_propagation_error, **params)
"""

import logging
import time
from functools import wraps
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class RetryExhaustedError(Exception):
    """All retry attempts have been exhausted"""
    pass


def is_role_propagation_error(error: Exception) -> bool:
    """True for the Lambda error raised while a new execution role propagates."""
    response = getattr(error, "response", None) or {}
    err = response.get("Error", {})
    return (
        err.get("Code") == "InvalidParameterValueException"
        and "cannot be assumed" in err.get("Message", "")
    )


def retry(
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    retry_if: Optional[Callable[[Exception], bool]] = None,
    sleep: Optional[Callable[[float], None]] = None,
):
    """
    Decorator for retrying functions with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts
        initial_delay: Initial delay between retries in seconds
        max_delay: Maximum delay between retries
        exponential_base: Base for exponential backoff calculation
        retry_if: Predicate selecting retryable exceptions; others are
            raised immediately. Defaults to TimeoutError/ConnectionError.
        sleep: Sleep function (default time.sleep, resolved per call)
    """
    should_retry = retry_if or (lambda e: isinstance(e, (TimeoutError, ConnectionError)))

    def decorator(func: Callable):
        @wraps(func)
        def wrapper(*args, **kwargs):
            name = getattr(func, "__name__", repr(func))
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    if not should_retry(e):
                        raise
                    if attempt == max_attempts:
                        logger.error(
                            f"Retry exhausted for {name} after {max_attempts} attempts: {e}"
                        )
                        raise RetryExhaustedError(
                            f"Failed after {max_attempts} attempts: {e}"
                        ) from e

                    delay = min(
                        initial_delay * (exponential_base ** (attempt - 1)),
                        max_delay
                    )
                    logger.warning(
                        f"Attempt {attempt}/{max_attempts} failed for {name}: {e}. "
                        f"Retrying in {delay:.1f}s..."
                    )
                    (sleep or time.sleep)(delay)

        return wrapper
    return decorator


def retry_call(
    func: Callable,
    *args,
    max_attempts: int = 6,
    initial_delay: float = 2.0,
    retry_if: Optional[Callable[[Exception], bool]] = None,
    sleep: Optional[Callable[[float], None]] = None,
    **kwargs
):
    """Call ``func(*args, **kwargs)`` with the retry policy of ``retry``."""
    wrapped = retry(
        max_attempts=max_attempts,
        initial_delay=initial_delay,
        retry_if=retry_if,
        sleep=sleep,
    )(func)
    return wrapped(*args, **kwargs)
