# inviter/config/projection_config.py
"""
Settings for projection synchronization, structural transactions and feeds.
Every value can be overridden with a PROJECTION_ prefixed environment variable.
"""

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import SettingsConfigDict

from inviter.common.base.base_config import BaseConfig, BASE_CONFIG_DICT


class ProjectionConfig(BaseConfig):
    """Projection engine configuration."""

    model_config = SettingsConfigDict(
        **BASE_CONFIG_DICT,
        env_prefix='PROJECTION_',
    )

    # =========================================================================
    # POINTER SYNCHRONIZATION
    # =========================================================================

    sync_max_attempts: int = Field(
        default=5,
        ge=1,
        description="Read-modify-write attempts before a sync gives up"
    )
    sync_retry_delay_ms: int = Field(
        default=0,
        ge=0,
        description="Pause between sync attempts; 0 retries immediately"
    )

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    transaction_item_limit: int = Field(
        default=100,
        ge=1,
        description="Maximum intents accepted by one transactional write"
    )
    bulk_chunk_size: int = Field(
        default=90,
        ge=1,
        description="Intents per sub-batch for chunked bulk writes"
    )
    series_transaction_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Rebuild-and-resubmit attempts for structural operations"
    )

    # =========================================================================
    # FEED
    # =========================================================================

    feed_default_limit: int = Field(default=10, ge=1)
    feed_max_limit: int = Field(default=50, ge=1)
    feed_unscheduled_limit: int = Field(
        default=100,
        ge=1,
        description="Unscheduled (needs day) rows per page; more are reached with needs_day_cursor"
    )

    @model_validator(mode="after")
    def _chunk_fits_transaction(self) -> "ProjectionConfig":
        if self.bulk_chunk_size > self.transaction_item_limit:
            raise ValueError("bulk_chunk_size must not exceed transaction_item_limit")
        return self


@lru_cache(maxsize=1)
def get_projection_config() -> ProjectionConfig:
    """Get projection configuration singleton (cached)."""
    return ProjectionConfig()


def reset_projection_config() -> None:
    """Reset config singleton (for testing)."""
    get_projection_config.cache_clear()
