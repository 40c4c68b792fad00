# =============================================================================
# File: inviter/services/application/structural_retry.py
# Description: Rebuild-and-resubmit loop for structural operations
# =============================================================================

from __future__ import annotations

from typing import Awaitable, Callable, Optional, TypeVar

from inviter.common.exceptions.projection_exceptions import TransactionCanceledError
from inviter.config.projection_config import ProjectionConfig, get_projection_config
from inviter.config.reliability_config import ReliabilityConfigs
from inviter.infra.reliability.retry import retry_async

T = TypeVar("T")


def is_stale_snapshot(error: Exception) -> bool:
    """Only a cancelled batch is worth rebuilding; everything else propagates."""
    return isinstance(error, TransactionCanceledError)


async def run_structural(
        operation: Callable[[], Awaitable[T]],
        context: str,
        config: Optional[ProjectionConfig] = None,
) -> T:
    """
    Run ``operation`` (fresh reads + one batch) until it commits.

    ``operation`` must re-read everything it builds the batch from on each
    call. The last :class:`TransactionCanceledError` propagates once the
    attempts are used up.
    """
    config = config or get_projection_config()
    return await retry_async(
        operation,
        retry_config=ReliabilityConfigs.structural_operation_retry(
            max_attempts=config.series_transaction_max_attempts,
            retry_condition=is_stale_snapshot,
        ),
        context=context,
    )
