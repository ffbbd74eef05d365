"""Retry utilities for tool calls.

Provides exponential backoff and an async retry driver.

Usage:
    from thumbcraft.retry_utils import with_retry, RetryConfig

    config = RetryConfig(max_attempts=3, base_delay=1.0)
    result, stats = await with_retry(lambda: call_tool(), config=config, context="search")

Environment Variables:
    MCP_MAX_RETRIES: Max attempts (default: 3)
    MCP_RETRY_BASE_DELAY: Initial delay in seconds (default: 1.0)
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from . import env

logger = logging.getLogger(__name__)

# Signature: (message: str, attempt: int, max_attempts: int, delay: float) -> None
RetryCallback = Callable[[str, int, int, float], None]

T = TypeVar('T')


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    The default schedule is 3 attempts with waits of 1s then 2s, no jitter.
    """
    max_attempts: int = field(default_factory=env.resolve_mcp_max_retries)
    base_delay: float = field(default_factory=env.resolve_mcp_retry_base_delay)
    max_delay: float = 30.0
    jitter_factor: float = 0.0  # Random jitter range: [1-jitter, 1+jitter]


@dataclass
class RetryStats:
    """Statistics from a retry operation."""
    attempts: int = 0
    total_delay: float = 0.0
    last_error: Optional[BaseException] = None
    errors: List[Dict[str, Any]] = field(default_factory=list)


def calculate_backoff(attempt: int, config: RetryConfig) -> float:
    """Delay to wait after failed ``attempt`` (1-indexed).

    ``base_delay * 2 ** (attempt - 1)``, capped at ``max_delay``, with
    optional jitter.
    """
    exp_delay = config.base_delay * (2 ** (attempt - 1))
    delay = min(config.max_delay, exp_delay)
    if config.jitter_factor:
        delay *= random.uniform(1 - config.jitter_factor, 1 + config.jitter_factor)
    return delay


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    config: Optional[RetryConfig] = None,
    context: str = "tool call",
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    on_retry: Optional[RetryCallback] = None,
) -> Tuple[T, RetryStats]:
    """Await ``fn()`` with retries and exponential backoff.

    Args:
        fn: Zero-argument coroutine factory; called once per attempt.
        config: Retry configuration (uses defaults if None).
        context: Description for log messages.
        should_retry: Predicate deciding whether an error is retryable.
            All errors are retried when omitted.
        on_retry: Optional callback notified before each backoff sleep.

    Returns:
        Tuple of (result, RetryStats).

    Raises:
        The last exception once attempts are exhausted or the error is
        not retryable.
    """
    if config is None:
        config = RetryConfig()

    stats = RetryStats()

    for attempt in range(1, config.max_attempts + 1):
        stats.attempts = attempt
        try:
            result = await fn()
            return result, stats
        except Exception as exc:
            stats.last_error = exc
            stats.errors.append({
                "attempt": attempt,
                "error": str(exc)[:200],
                "error_type": exc.__class__.__name__,
            })

            retryable = should_retry(exc) if should_retry else True
            if not retryable or attempt == config.max_attempts:
                raise

            delay = calculate_backoff(attempt, config)
            stats.total_delay += delay

            exc_msg = str(exc)[:140].replace('\n', ' ')
            msg = (f"[Retry {attempt}/{config.max_attempts}] {context}: "
                   f"{exc.__class__.__name__}: {exc_msg} | sleep {delay:.2f}s")
            if on_retry:
                on_retry(msg, attempt, config.max_attempts, delay)
            else:
                logger.warning(msg)

            await asyncio.sleep(delay)

    raise RuntimeError("Retry loop exited without result or exception")


__all__ = [
    'RetryCallback',
    'RetryConfig',
    'RetryStats',
    'calculate_backoff',
    'with_retry',
]
