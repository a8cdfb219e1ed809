"""Test configuration and fixtures for the draft engine test suite."""

import os
import sys
import pathlib

# Force test-safe defaults before any other imports
os.environ.setdefault('ENV', 'TEST')
os.environ.setdefault('DB_URI', 'sqlite+aiosqlite:///:memory:')
os.environ.setdefault('RETRY_BACKOFF_BASE_S', '0')
os.environ.setdefault('RESTART_DELAY_S', '0')
os.environ.setdefault('LOG_FORMAT', 'text')

# Ensure tests can import from src/
ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from typing import Dict, Iterable, Optional

import pytest

from draft_engine.broadcast import InMemoryBroadcaster
from draft_engine.draft_logging import metrics
from draft_engine.executor import AutoPickExecutor
from draft_engine.models import Asset, AssetCategory, DraftSession, DraftType, SlotConfig, Team
from draft_engine.picks import PickRecorder
from draft_engine.resilience import DraftCircuitBreaker, RetryConfig
from draft_engine.store import InMemoryDraftStore
from draft_engine.timer import DraftTimerManager

MFG = AssetCategory.MANUFACTURER
STRAIN = AssetCategory.CANNABIS_STRAIN


def make_assets(category: AssetCategory, scores: Iterable[Optional[float]], start_id: int = 1):
    """Assets with consecutive ids and the given latest scores."""
    return [
        Asset(asset_id=start_id + i, category=category, name=f"{category.value} {start_id + i}",
              latest_score=score)
        for i, score in enumerate(scores)
    ]


def build_store(
    team_ids=(1, 2),
    categories: Optional[Dict[AssetCategory, int]] = None,
    auto_teams=(),
    time_limit: float = 90,
    draft_type: DraftType = DraftType.SNAKE,
    assets: Optional[Iterable[Asset]] = None,
    session_id: int = 1,
) -> InMemoryDraftStore:
    """In-memory store seeded with one session, named teams and assets."""
    session = DraftSession(
        session_id=session_id,
        team_ids=list(team_ids),
        pick_time_limit=time_limit,
        draft_type=draft_type,
        slot_config=SlotConfig(categories=categories or {MFG: 2}),
    )
    store = InMemoryDraftStore()
    store.add_session(session, [
        Team(team_id=t, session_id=session_id, name=f"Team {t}", auto_pick_enabled=t in auto_teams)
        for t in team_ids
    ])
    if assets is None:
        assets = make_assets(MFG, [float(s) for s in range(100, 80, -1)])
    store.add_assets(assets)
    return store


@pytest.fixture(autouse=True)
def reset_metrics():
    """Metrics are process-global; start every test from zero."""
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def broadcaster():
    return InMemoryBroadcaster()


@pytest.fixture
def retry_config():
    return RetryConfig(max_attempts=3, base_delay=0, max_delay=0)


@pytest.fixture
def store():
    """Two teams, {manufacturer: 2} plus flex, 90s clock, nobody on auto-pick."""
    return build_store()


@pytest.fixture
def executor(store, broadcaster, retry_config):
    recorder = PickRecorder(store, store, broadcaster, retry_config=retry_config)
    return AutoPickExecutor(recorder, DraftCircuitBreaker(failure_threshold=3))


@pytest.fixture
async def manager(store, broadcaster, executor):
    mgr = DraftTimerManager(store, store, broadcaster, executor=executor,
                            tick_interval=0.01, restart_delay=0)
    yield mgr
    await mgr.shutdown()
