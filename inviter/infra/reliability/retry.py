# =============================================================================
# File: inviter/infra/reliability/retry.py
# Description: Backoff computation and the async retry driver
# =============================================================================

import asyncio
import logging
import random
from typing import Awaitable, Callable, Dict, Optional, TypeVar

from inviter.config.reliability_config import RetryConfig

logger = logging.getLogger("inviter.retry")

T = TypeVar('T')


def _full_jitter(delay_ms: float) -> float:
    return random.uniform(0, delay_ms)


def _equal_jitter(delay_ms: float) -> float:
    return delay_ms / 2 + random.uniform(0, delay_ms / 2)


_JITTER: Dict[str, Callable[[float], float]] = {
    "full": _full_jitter,
    "equal": _equal_jitter,
}


def compute_delay_ms(retry_config: RetryConfig, attempt: int) -> float:
    """Backoff delay before the attempt following ``attempt`` (1-based)."""
    capped = min(
        retry_config.initial_delay_ms * retry_config.backoff_factor ** (attempt - 1),
        retry_config.max_delay_ms,
    )
    if not retry_config.jitter:
        return capped
    return _JITTER.get(retry_config.jitter_type, _full_jitter)(capped)


async def retry_async(
        func: Callable[..., Awaitable[T]],
        *args,
        retry_config: Optional[RetryConfig] = None,
        context: str = "operation",
        **kwargs
) -> T:
    """
    Await ``func(*args, **kwargs)`` until it succeeds or attempts run out.

    Errors rejected by ``retry_config.retry_condition`` propagate at once;
    the last error is re-raised when attempts run out.
    """
    retry_config = retry_config or RetryConfig()
    attempt = 0
    while True:
        attempt += 1
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if retry_config.retry_condition and not retry_config.retry_condition(e):
                logger.debug(f"{context}: {type(e).__name__} is not retryable")
                raise
            if attempt >= retry_config.max_attempts:
                logger.warning(f"{context}: giving up after {attempt} attempts, last error: {e}")
                raise

            delay_ms = compute_delay_ms(retry_config, attempt)
            logger.info(
                f"{context}: attempt {attempt}/{retry_config.max_attempts} failed ({e}), "
                f"retrying in {delay_ms:.0f}ms"
            )
            await asyncio.sleep(delay_ms / 1000)
