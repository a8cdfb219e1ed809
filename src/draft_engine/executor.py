"""Auto-pick executor: selects and persists one pick on a team's behalf.

Only one execution runs per session at a time. A caller that arrives while
one is in flight does not start a second pick; it waits for the in-flight
result and gets it back marked ``joined``.
"""

import asyncio
import time
from dataclasses import dataclass, replace
from typing import Dict, Optional, Set

from .draft_logging import get_logger, metrics, session_context
from .draft_state import build_rosters, compute_next_pick
from .errors import (
    DraftCompleteError,
    NoEligibleAssetError,
    PersistenceError,
    PickRejectedError,
    SessionNotFoundError,
    TeamNotFoundError,
)
from .models import Asset, AutoPickFailure, Pick, RejectionReason
from .picks import PickRecorder
from .resilience import DraftCircuitBreaker
from .selector import Ranker, rank_by_latest_score, select_best_available

logger = get_logger(__name__)

# Failures that say nothing about the health of auto-pick for this team.
_UNCOUNTED_FAILURES = {AutoPickFailure.CIRCUIT_OPEN, AutoPickFailure.STALE_TURN}


@dataclass(frozen=True)
class AutoPickResult:
    """Outcome of one auto-pick execution."""

    success: bool
    picked_asset: Optional[Asset] = None
    pick: Optional[Pick] = None
    draft_completed: bool = False
    retry_count: int = 0
    error: Optional[str] = None
    failure: Optional[AutoPickFailure] = None
    circuit_tripped: bool = False
    joined: bool = False


class AutoPickExecutor:
    """Runs auto-picks with retry, breaker accounting and in-flight dedup."""

    def __init__(self, recorder: PickRecorder, breaker: Optional[DraftCircuitBreaker] = None,
                 ranker: Ranker = rank_by_latest_score, max_attempts: Optional[int] = None):
        self.recorder = recorder
        self.store = recorder.store
        self.pool = recorder.pool
        self.breaker = breaker or DraftCircuitBreaker()
        self.ranker = ranker
        if max_attempts is None:
            max_attempts = recorder.retry_config.max_attempts
        self.max_attempts = max_attempts
        self._in_flight: Dict[int, asyncio.Future] = {}

    def is_pick_in_progress(self, session_id: int) -> bool:
        return session_id in self._in_flight

    async def execute_auto_pick(self, session_id: int, team_id: int) -> AutoPickResult:
        """Pick the best available asset for ``team_id`` in ``session_id``.

        Never raises: every failure is reported through the result. A caller
        that joined a run which was then cancelled gets an ``UNEXPECTED``
        failure; cancelling the caller itself still propagates.
        """
        with session_context(session_id):
            return await self._run_once(session_id, team_id)

    async def _run_once(self, session_id: int, team_id: int) -> AutoPickResult:
        in_flight = self._in_flight.get(session_id)
        if in_flight is not None:
            logger.info("auto_pick.joined_in_flight", session_id=session_id, team_id=team_id)
            metrics.increment("auto_pick.joined")
            try:
                result = await asyncio.shield(in_flight)
            except asyncio.CancelledError:
                if not in_flight.cancelled():
                    raise
                logger.warning("auto_pick.joined_run_cancelled", session_id=session_id, team_id=team_id)
                return AutoPickResult(
                    success=False,
                    error="The in-flight auto-pick was cancelled",
                    failure=AutoPickFailure.UNEXPECTED,
                    joined=True,
                )
            return replace(result, joined=True)

        future = asyncio.get_running_loop().create_future()
        self._in_flight[session_id] = future
        start = time.perf_counter()
        try:
            try:
                result = await self._execute(session_id, team_id)
            except Exception as e:
                logger.exception("auto_pick.unexpected_error", session_id=session_id, team_id=team_id)
                result = AutoPickResult(success=False, error=str(e), failure=AutoPickFailure.UNEXPECTED)
                result = await self._account_failure(session_id, team_id, result)
            future.set_result(result)
        finally:
            self._in_flight.pop(session_id, None)
            if not future.done():
                # Cancelled mid-pick; joined callers get a failed result.
                future.cancel()

        metrics.timer("auto_pick.duration", time.perf_counter() - start)
        metrics.increment("auto_pick.executions", tags={"success": str(result.success).lower()})
        return result

    async def _execute(self, session_id: int, team_id: int) -> AutoPickResult:
        if self.breaker.is_open_for(session_id, team_id):
            return AutoPickResult(
                success=False,
                error=f"Circuit open for team {team_id}; manual pick required",
                failure=AutoPickFailure.CIRCUIT_OPEN,
            )

        try:
            session = await self.store.get_session(session_id)
        except SessionNotFoundError as e:
            return AutoPickResult(success=False, error=str(e), failure=AutoPickFailure.NOT_FOUND)

        excluded: Set[tuple] = set()
        retry_count = 0
        last_error = ""

        for attempt in range(1, self.max_attempts + 1):
            picks = await self.store.list_picks(session_id)
            try:
                next_pick = compute_next_pick(session, picks)
            except DraftCompleteError:
                return AutoPickResult(success=True, draft_completed=True, retry_count=retry_count)
            if next_pick.team_id != team_id:
                logger.info("auto_pick.stale_turn", session_id=session_id, team_id=team_id,
                            acting_team_id=next_pick.team_id)
                return AutoPickResult(
                    success=False,
                    error=f"Team {team_id} is no longer on the clock",
                    failure=AutoPickFailure.STALE_TURN,
                    retry_count=retry_count,
                )

            roster = build_rosters(session, picks)[team_id]
            pool = [a for a in await self.pool.list_unpicked_assets(session_id) if a.key not in excluded]
            try:
                asset = select_best_available(roster, pool, team_id, self.ranker)
            except NoEligibleAssetError as e:
                logger.warning("auto_pick.no_eligible_asset", session_id=session_id, team_id=team_id)
                result = AutoPickResult(
                    success=False,
                    error=str(e),
                    failure=AutoPickFailure.NO_ELIGIBLE_ASSET,
                    retry_count=retry_count,
                )
                return await self._account_failure(session_id, team_id, result)

            try:
                pick, writes = await self.recorder.commit(
                    session_id, team_id, next_pick.pick_number, asset.category, asset.asset_id, auto=True
                )
                retry_count += writes - 1
            except PickRejectedError as e:
                if e.reason == RejectionReason.OUT_OF_TURN:
                    logger.info("auto_pick.stale_turn", session_id=session_id, team_id=team_id,
                                pick_number=next_pick.pick_number)
                    return AutoPickResult(
                        success=False, error=str(e), failure=AutoPickFailure.STALE_TURN,
                        retry_count=retry_count,
                    )
                # Lost the asset to a concurrent pick; try the next best one.
                excluded.add(asset.key)
                retry_count += 1
                last_error = str(e)
                metrics.increment("auto_pick.conflicts", tags={"reason": e.reason.value})
                logger.warning("auto_pick.conflict", session_id=session_id, team_id=team_id,
                               asset_id=asset.asset_id, category=asset.category.value,
                               reason=e.reason.value, attempt=attempt)
                continue
            except PersistenceError as e:
                retry_count += self.recorder.retry_config.max_attempts - 1
                logger.error("auto_pick.persistence_failed", session_id=session_id,
                             team_id=team_id, error=str(e))
                result = AutoPickResult(
                    success=False, error=str(e), failure=AutoPickFailure.PERSISTENCE,
                    retry_count=retry_count,
                )
                return await self._account_failure(session_id, team_id, result)

            self.breaker.record_success(session_id)
            recorded = await self.recorder.announce(pick)
            logger.info("auto_pick.completed", session_id=session_id, team_id=team_id,
                        pick_number=pick.pick_number, asset_id=asset.asset_id,
                        retry_count=retry_count, draft_completed=recorded.draft_completed)
            return AutoPickResult(
                success=True,
                picked_asset=asset,
                pick=pick,
                draft_completed=recorded.draft_completed,
                retry_count=retry_count,
            )

        result = AutoPickResult(
            success=False,
            error=f"Gave up after {self.max_attempts} attempts: {last_error}",
            failure=AutoPickFailure.PERSISTENCE,
            retry_count=retry_count,
        )
        return await self._account_failure(session_id, team_id, result)

    async def _account_failure(self, session_id: int, team_id: int,
                               result: AutoPickResult) -> AutoPickResult:
        """Feed a countable failure to the breaker; disable auto-pick on trip."""
        if result.failure in _UNCOUNTED_FAILURES:
            return result
        status = self.breaker.record_failure(session_id, team_id)
        if not status.tripped:
            return result
        try:
            await self.store.set_auto_pick_enabled(team_id, False)
        except (PersistenceError, TeamNotFoundError) as e:
            logger.error("auto_pick.disable_failed", session_id=session_id, team_id=team_id,
                         error=str(e))
        logger.warning("auto_pick.disabled_by_breaker", session_id=session_id, team_id=team_id,
                       failures=status.failures)
        return replace(result, circuit_tripped=True)

