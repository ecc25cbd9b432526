"""Retry policy with exponential backoff for JSON-RPC calls."""

import logging
import os
import random
import time
from typing import Any, Callable, Optional, TypeVar

from web3.exceptions import BadFunctionCallOutput, ContractLogicError

from garden_analytics.errors import RpcUnavailable

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Reverts and undecodable outputs will not change on a second attempt
NON_RETRYABLE_ERRORS = (ContractLogicError, BadFunctionCallOutput)


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 0.5,
        max_delay: float = 10.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
    ):
        """
        Initialize retry configuration.

        Args:
            max_attempts: Maximum number of attempts (including the first)
            initial_delay: Delay in seconds before the first retry
            max_delay: Maximum delay between retries
            exponential_base: Base for exponential backoff calculation
            jitter: Whether to add random jitter to delays
        """
        self.max_attempts = max(1, max_attempts)
        self.initial_delay = max(0.0, initial_delay)
        self.max_delay = max(self.initial_delay, max_delay)
        self.exponential_base = max(1.0, exponential_base)
        self.jitter = jitter

    @classmethod
    def from_env(cls) -> "RetryConfig":
        """Load retry configuration from environment variables."""
        return cls(
            max_attempts=int(os.getenv("GARDEN_RETRY_MAX_ATTEMPTS", "3")),
            initial_delay=float(os.getenv("GARDEN_RETRY_INITIAL_DELAY", "0.5")),
            max_delay=float(os.getenv("GARDEN_RETRY_MAX_DELAY", "10.0")),
            exponential_base=float(os.getenv("GARDEN_RETRY_EXPONENTIAL_BASE", "2.0")),
            jitter=os.getenv("GARDEN_RETRY_JITTER", "true").lower() in ("true", "1", "yes"),
        )

    @classmethod
    def from_config(cls, rpc_config: dict) -> "RetryConfig":
        """Build from the `rpc.retry` block of chains.yaml, falling back to env."""
        base = cls.from_env()
        retry = rpc_config.get('retry', {}) or {}
        return cls(
            max_attempts=retry.get('max_attempts', base.max_attempts),
            initial_delay=retry.get('initial_delay', base.initial_delay),
            max_delay=retry.get('max_delay', base.max_delay),
            exponential_base=retry.get('exponential_base', base.exponential_base),
            jitter=retry.get('jitter', base.jitter),
        )

    def get_delay(self, attempt: int) -> float:
        """
        Calculate delay for given attempt number.

        Args:
            attempt: Attempt number (0-indexed)

        Returns:
            Delay in seconds
        """
        delay = self.initial_delay * (self.exponential_base ** attempt)
        delay = min(delay, self.max_delay)

        if self.jitter and delay > 0:
            # ±25% jitter
            jitter_amount = delay * 0.25
            delay = delay + random.uniform(-jitter_amount, jitter_amount)
            delay = max(0.0, delay)

        return delay


def should_retry(error: Exception, attempt: int, config: RetryConfig) -> bool:
    """
    Determine if a failed call should be retried.

    Args:
        error: Exception raised by the call
        attempt: Current attempt number (0-indexed)
        config: Retry configuration

    Returns:
        True if should retry, False otherwise
    """
    if attempt >= config.max_attempts - 1:
        return False
    if isinstance(error, NON_RETRYABLE_ERRORS):
        return False
    return True


def retry_with_backoff(
    func: Callable[..., T],
    *args: Any,
    config: Optional[RetryConfig] = None,
    description: str = "rpc call",
    **kwargs: Any,
) -> T:
    """
    Execute an RPC call with retry and exponential backoff.

    Any failure that survives the retries is re-raised as RpcUnavailable,
    chained to the last underlying error.

    Args:
        func: Function to execute
        *args: Positional arguments for function
        config: Retry configuration (defaults to env-based config)
        description: Name of the call, used in logs and the raised error
        **kwargs: Keyword arguments for function

    Returns:
        Function return value

    Raises:
        RpcUnavailable: if all attempts failed
    """
    if config is None:
        config = RetryConfig.from_env()

    for attempt in range(config.max_attempts):
        try:
            return func(*args, **kwargs)
        except Exception as error:
            if not should_retry(error, attempt, config):
                raise RpcUnavailable(
                    f"{description} failed after {attempt + 1} attempt(s): {error}",
                    method=description,
                ) from error

            delay = config.get_delay(attempt)
            logger.debug(
                "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                description, attempt + 1, config.max_attempts, error, delay
            )
            if delay > 0:
                time.sleep(delay)

    raise RuntimeError("Retry logic error: no attempts executed")


def call_contract(contract_function, config: Optional[RetryConfig] = None, description: Optional[str] = None):
    """Shorthand for `retry_with_backoff(fn.call)` on a bound contract function."""
    if description is None:
        description = getattr(contract_function, 'fn_name', 'contract call')
    return retry_with_backoff(contract_function.call, config=config, description=description)
