# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/castore/core/retry.py

"""
Bounded retry with exponential backoff for backend I/O.

Retries are private to a storage driver and always end after a fixed
number of attempts, so a persistent failure surfaces as an error instead
of being masked.
"""

import random
import time
from functools import wraps
from typing import Callable, Type, Tuple, Any

from loguru import logger

from castore.system.exceptions import BackendError, ReplicaUnavailable


class RetryConfig:
    """Configuration for retry behavior"""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.2,
        max_delay: float = 5.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter


REPLICA_RETRY_CONFIG = RetryConfig(
    max_attempts=3,
    base_delay=0.2,
    max_delay=5.0,
    exponential_base=2.0,
    jitter=True
)

RETRYABLE_ERRORS: Tuple[Type[Exception], ...] = (ReplicaUnavailable,)

# a missing path is an answer from the backend, not a failed attempt
QUIET_ERRORS: Tuple[Type[Exception], ...] = (FileNotFoundError,)


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate delay for exponential backoff with optional jitter"""
    if attempt <= 0:
        return 0.0

    delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter_range = delay * 0.1
        delay += random.uniform(-jitter_range, jitter_range)

    return max(0.0, delay)


def is_retryable_error(exception: Exception, retryable_exceptions: Tuple[Type[Exception], ...]) -> bool:
    """Determine if an exception should trigger a retry"""
    if isinstance(exception, retryable_exceptions):
        if isinstance(exception, BackendError):
            return exception.retry_possible
        return True
    return False


class RetryableOperation:
    """Runs a callable under a bounded retry policy, logging each attempt."""

    def __init__(
        self,
        operation_name: str,
        config: RetryConfig = None,
        retryable_exceptions: Tuple[Type[Exception], ...] = RETRYABLE_ERRORS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.operation_name = operation_name
        self.config = config or REPLICA_RETRY_CONFIG
        self.retryable_exceptions = retryable_exceptions
        self.attempt = 0
        self._sleep = sleep

    def execute(self, func: Callable, *args, **kwargs) -> Any:
        """Execute a function with retry logic"""
        last_exception = None

        for attempt in range(1, self.config.max_attempts + 1):
            self.attempt = attempt
            try:
                result = func(*args, **kwargs)
                if attempt > 1:
                    logger.info(f"{self.operation_name} succeeded on attempt {attempt}")
                return result

            except Exception as e:
                last_exception = e

                if isinstance(e, QUIET_ERRORS):
                    raise

                if not is_retryable_error(e, self.retryable_exceptions):
                    logger.debug(f"{self.operation_name} failed with non-retryable error: {e}")
                    raise

                if attempt >= self.config.max_attempts:
                    break

                delay = calculate_delay(attempt, self.config)
                logger.warning(
                    f"{self.operation_name} failed on attempt {attempt}/{self.config.max_attempts}: {e}. "
                    f"Retrying in {delay:.2f} seconds..."
                )
                if delay > 0:
                    self._sleep(delay)

        logger.error(f"{self.operation_name} failed after {self.config.max_attempts} attempts")
        raise last_exception


def retry_with_backoff(
    config: RetryConfig = None,
    retryable_exceptions: Tuple[Type[Exception], ...] = RETRYABLE_ERRORS,
    operation_name: str = "operation"
):
    """Decorator form of RetryableOperation."""
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            op = RetryableOperation(operation_name, config, retryable_exceptions)
            return op.execute(func, *args, **kwargs)
        return wrapper
    return decorator
