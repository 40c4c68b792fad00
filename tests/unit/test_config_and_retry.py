# =============================================================================
# File: tests/unit/test_config_and_retry.py
# Description: Projection settings and the structural retry loop
# =============================================================================

import pytest
from pydantic import ValidationError as PydanticValidationError

from inviter.common.exceptions.exceptions import RepositoryError
from inviter.common.exceptions.projection_exceptions import TransactionCanceledError
from inviter.config.projection_config import ProjectionConfig, get_projection_config, reset_projection_config
from inviter.config.reliability_config import RetryConfig
from inviter.infra.reliability.retry import compute_delay_ms, retry_async
from inviter.services.application.structural_retry import run_structural


class TestProjectionConfig:
    def test_defaults(self, monkeypatch):
        for name in ("PROJECTION_SYNC_MAX_ATTEMPTS", "PROJECTION_BULK_CHUNK_SIZE"):
            monkeypatch.delenv(name, raising=False)
        config = ProjectionConfig(_env_file=None)

        assert config.sync_max_attempts == 5
        assert config.transaction_item_limit == 100
        assert config.bulk_chunk_size == 90

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("PROJECTION_SYNC_MAX_ATTEMPTS", "7")
        reset_projection_config()

        assert get_projection_config().sync_max_attempts == 7

    def test_chunk_must_fit_in_transaction(self):
        with pytest.raises(PydanticValidationError):
            ProjectionConfig(_env_file=None, transaction_item_limit=50, bulk_chunk_size=60)


class TestRetry:
    def test_delay_without_jitter_is_capped(self):
        config = RetryConfig(initial_delay_ms=100, max_delay_ms=300, backoff_factor=2.0, jitter=False)

        assert [compute_delay_ms(config, n) for n in (1, 2, 3)] == [100, 200, 300]

    async def test_retry_until_success(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise RepositoryError("busy")
            return "ok"

        config = RetryConfig(max_attempts=3, initial_delay_ms=1, jitter=False)
        assert await retry_async(flaky, retry_config=config) == "ok"
        assert len(calls) == 3

    async def test_structural_loop_only_retries_cancellations(self, config):
        calls = []

        async def broken():
            calls.append(1)
            raise RepositoryError("down")

        with pytest.raises(RepositoryError):
            await run_structural(broken, "test", config)
        assert len(calls) == 1

    async def test_structural_loop_gives_up_after_configured_attempts(self, config):
        calls = []

        async def always_stale():
            calls.append(1)
            raise TransactionCanceledError(["version mismatch"])

        with pytest.raises(TransactionCanceledError):
            await run_structural(always_stale, "test", config)
        assert len(calls) == config.series_transaction_max_attempts
