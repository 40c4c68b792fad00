# =============================================================================
# File: tests/conftest.py
# Description: Shared fixtures: in-memory store, config, authorization fakes
# =============================================================================

import pytest

from inviter.config.projection_config import ProjectionConfig, reset_projection_config
from inviter.hangout.items import Hangout
from inviter.infra.projections.pointer_sync import PointerSynchronizer
from inviter.infra.projections.series_transactions import SeriesTransactionCoordinator
from inviter.infra.read_repos.hangout_read_repo import HangoutReadRepo

from tests.fakes.builders import new_id
from tests.fakes.fake_authorization import FakeAuthorization, RecordingChangeSignals
from tests.fakes.fake_item_store import FakeItemStore


@pytest.fixture(autouse=True)
def _fresh_config_singletons():
    reset_projection_config()
    yield
    reset_projection_config()


@pytest.fixture
def config() -> ProjectionConfig:
    return ProjectionConfig(
        sync_max_attempts=5,
        sync_retry_delay_ms=0,
        transaction_item_limit=100,
        bulk_chunk_size=90,
        series_transaction_max_attempts=3,
        feed_default_limit=10,
        feed_max_limit=50,
    )


@pytest.fixture
def store() -> FakeItemStore:
    return FakeItemStore()


@pytest.fixture
def auth() -> FakeAuthorization:
    return FakeAuthorization()


@pytest.fixture
def signals() -> RecordingChangeSignals:
    return RecordingChangeSignals()


@pytest.fixture
def repo(store) -> HangoutReadRepo:
    return HangoutReadRepo(store)


@pytest.fixture
def coordinator(store) -> SeriesTransactionCoordinator:
    return SeriesTransactionCoordinator(store)


@pytest.fixture
def synchronizer(store, config) -> PointerSynchronizer:
    return PointerSynchronizer(store, config)


@pytest.fixture
def group_id() -> str:
    return new_id()


@pytest.fixture
def user_id() -> str:
    return new_id()


@pytest.fixture
async def standalone(coordinator, group_id) -> Hangout:
    """A stored standalone hangout in ``group_id`` starting in the future."""
    hangout = Hangout(
        hangout_id=new_id(),
        title="Trivia night",
        start_timestamp=10_000,
        end_timestamp=12_000,
        associated_groups=[group_id],
    )
    await coordinator.create_standalone_hangout(hangout)
    return hangout
