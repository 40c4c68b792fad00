# =============================================================================
# File: inviter/config/reliability_config.py
# Description: Retry configuration for store access and structural operations
# =============================================================================

from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict


class RetryConfig(BaseModel):
    """Retry configuration."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    max_attempts: int = 3
    initial_delay_ms: int = 100
    max_delay_ms: int = 10000
    backoff_factor: float = 2.0
    jitter: bool = True
    jitter_type: str = "full"
    retry_condition: Optional[Callable[[Exception], bool]] = None


class ReliabilityConfigs:
    """Factory for the retry profiles used across the engine."""

    @staticmethod
    def postgres_retry() -> RetryConfig:
        """Transient connection failures talking to PostgreSQL."""
        return RetryConfig(
            max_attempts=3,
            initial_delay_ms=100,
            max_delay_ms=2000,
            backoff_factor=2.0,
            jitter=True,
        )

    @staticmethod
    def structural_operation_retry(
            max_attempts: int,
            retry_condition: Callable[[Exception], bool],
    ) -> RetryConfig:
        """Rebuild-and-resubmit loop for cancelled structural transactions."""
        return RetryConfig(
            max_attempts=max_attempts,
            initial_delay_ms=20,
            max_delay_ms=500,
            backoff_factor=2.0,
            jitter=True,
            jitter_type="equal",
            retry_condition=retry_condition,
        )
