"""Per-session pick clock and the turn loop built around it.

Each session has at most one ``DraftTimer``. A running timer owns two
handles: a tick task that sends coarse sync broadcasts (clients interpolate
between them) and a loop ``call_later`` handle that fires expiry. Both are
cancelled before a replacement is registered, and an expiry whose timer is no
longer the registered one does nothing.

State per session::

    IDLE -> RUNNING -> PAUSED -> RUNNING
                    -> EXPIRING -> RUNNING (next turn) | COMPLETE
"""

import asyncio
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Set

from tenacity import AsyncRetrying, RetryError, stop_after_attempt, wait_exponential

from .broadcast import Broadcaster
from .config import get_settings
from .draft_logging import get_logger, metrics, session_context
from .errors import (
    DraftCompleteError,
    DraftEngineError,
    NotYourTurnError,
    PickRejectedError,
)
from .executor import AutoPickExecutor, AutoPickResult
from .models import (
    AssetCategory,
    AutoPickEnabledReason,
    AutoPickFailure,
    DraftSession,
    ErrorKind,
    NextPick,
    RejectionReason,
    Team,
    TimerState,
)
from .picks import PickRecorder, RecordedPick
from .resilience import DraftCircuitBreaker
from .store import AssetPool, DraftStore

logger = get_logger(__name__)

Clock = Callable[[], float]


@dataclass
class DraftTimer:
    """Countdown for one pick."""

    session_id: int
    pick_number: int
    team_id: int
    time_limit: float
    duration: float
    started_at: float
    state: TimerState = TimerState.RUNNING
    tick_task: Optional[asyncio.Task] = None
    expiry_handle: Optional[asyncio.TimerHandle] = None
    paused_remaining: Optional[float] = None

    def remaining(self, now: float) -> float:
        if self.paused_remaining is not None:
            return self.paused_remaining
        return max(0.0, self.duration - (now - self.started_at))

    def cancel(self) -> None:
        """Cancel the expiry handle and the tick task."""
        if self.expiry_handle is not None:
            self.expiry_handle.cancel()
            self.expiry_handle = None
        if self.tick_task is not None:
            if not self.tick_task.done():
                self.tick_task.cancel()
            self.tick_task = None


class TimerRegistry:
    """Session id to live ``DraftTimer``; registering replaces and cancels."""

    def __init__(self, clock: Clock = time.monotonic):
        self.clock = clock
        self._timers: Dict[int, DraftTimer] = {}

    def init(self) -> None:
        """Start from an empty registry (process start)."""
        self.clear()

    def register(self, timer: DraftTimer) -> None:
        existing = self._timers.get(timer.session_id)
        if existing is not None and existing is not timer:
            existing.cancel()
        self._timers[timer.session_id] = timer

    def unregister(self, session_id: int) -> Optional[DraftTimer]:
        timer = self._timers.pop(session_id, None)
        if timer is not None:
            timer.cancel()
        return timer

    def get(self, session_id: int) -> Optional[DraftTimer]:
        return self._timers.get(session_id)

    def clear(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()

    def __contains__(self, session_id: int) -> bool:
        return session_id in self._timers

    def __len__(self) -> int:
        return len(self._timers)


class DraftTimerManager:
    """Drives a draft: arms clocks, auto-picks and restarts turns."""

    def __init__(
        self,
        store: DraftStore,
        pool: AssetPool,
        broadcaster: Broadcaster,
        executor: Optional[AutoPickExecutor] = None,
        breaker: Optional[DraftCircuitBreaker] = None,
        registry: Optional[TimerRegistry] = None,
        tick_interval: Optional[float] = None,
        restart_delay: Optional[float] = None,
    ):
        settings = get_settings()
        self.store = store
        self.pool = pool
        self.broadcaster = broadcaster
        if executor is None:
            executor = AutoPickExecutor(PickRecorder(store, pool, broadcaster), breaker)
        self.executor = executor
        self.recorder = executor.recorder
        self.breaker = executor.breaker
        self.registry = registry if registry is not None else TimerRegistry()
        self.registry.init()
        self.tick_interval = settings.TICK_INTERVAL_S if tick_interval is None else tick_interval
        self.restart_delay = settings.RESTART_DELAY_S if restart_delay is None else restart_delay
        self._locks: Dict[int, asyncio.Lock] = {}
        self._states: Dict[int, TimerState] = {}
        self._tasks: Set[asyncio.Task] = set()

    def _lock(self, session_id: int) -> asyncio.Lock:
        if session_id not in self._locks:
            self._locks[session_id] = asyncio.Lock()
        return self._locks[session_id]

    # Queries

    def timer_state(self, session_id: int) -> TimerState:
        timer = self.registry.get(session_id)
        if timer is not None:
            return timer.state
        return self._states.get(session_id, TimerState.IDLE)

    def has_active_timer(self, session_id: int) -> bool:
        timer = self.registry.get(session_id)
        return timer is not None and timer.state == TimerState.RUNNING

    def get_remaining_time(self, session_id: int) -> Optional[float]:
        timer = self.registry.get(session_id)
        if timer is None:
            return None
        return timer.remaining(self.registry.clock())

    def get_timer_info(self, session_id: int) -> Dict[str, Any]:
        timer = self.registry.get(session_id)
        info: Dict[str, Any] = {
            "active": self.has_active_timer(session_id),
            "state": self.timer_state(session_id).value,
            "pick_in_progress": self.executor.is_pick_in_progress(session_id),
        }
        if timer is not None:
            info.update(
                pick_number=timer.pick_number,
                team_id=timer.team_id,
                time_limit=timer.time_limit,
                remaining=timer.remaining(self.registry.clock()),
            )
        return info

    # Clock control

    async def start_timer(self, session_id: int) -> Optional[DraftTimer]:
        """Start the clock for whoever is on it.

        Teams with auto-pick enabled are picked for immediately, turn after
        turn, until a team without auto-pick is reached (its clock is armed
        and returned) or the draft completes (``None``). Does nothing while
        an auto-pick is already in flight for the session.
        """
        with session_context(session_id):
            return await self._start_turns(session_id)

    async def _start_turns(self, session_id: int) -> Optional[DraftTimer]:
        if self.executor.is_pick_in_progress(session_id):
            logger.info("timer.start_skipped", session_id=session_id, reason="pick_in_progress")
            return None

        async with self._lock(session_id):
            while True:
                self.registry.unregister(session_id)
                try:
                    session = await self.store.get_session(session_id)
                    next_pick = await self.store.get_next_pick(session_id)
                except DraftCompleteError:
                    self._complete(session_id)
                    return None
                team = await self.store.get_team(next_pick.team_id)

                if not team.auto_pick_enabled or self.breaker.is_open_for(session_id, team.team_id):
                    return await self._arm(session, next_pick, team, session.pick_time_limit)

                logger.info("timer.auto_pick_turn", session_id=session_id, team_id=team.team_id,
                            pick_number=next_pick.pick_number)
                # No clock runs for this turn; tell clients why.
                await self.broadcaster.notify_auto_pick_enabled(
                    session_id,
                    team_id=team.team_id,
                    team_name=team.display_name,
                    reason=AutoPickEnabledReason.AUTO_PICK_SKIP,
                )
                result = await self.executor.execute_auto_pick(session_id, team.team_id)
                if result.draft_completed:
                    self._complete(session_id)
                    return None
                if not result.success:
                    await self._report_failure(session_id, team, result)
                    if result.failure == AutoPickFailure.NOT_FOUND:
                        return None
                if self.restart_delay:
                    await asyncio.sleep(self.restart_delay)

    async def stop_timer(self, session_id: int) -> bool:
        """Cancel the session's clock. Safe when none is running."""
        timer = self.registry.unregister(session_id)
        if timer is None:
            return False
        logger.info("timer.stopped", session_id=session_id, pick_number=timer.pick_number)
        await self.broadcaster.notify_timer_stop(session_id)
        return True

    async def pause_timer(self, session_id: int) -> Optional[float]:
        """Freeze the clock and return the remaining seconds."""
        timer = self.registry.get(session_id)
        if timer is None or timer.state != TimerState.RUNNING:
            return None
        remaining = timer.remaining(self.registry.clock())
        timer.cancel()
        timer.state = TimerState.PAUSED
        timer.paused_remaining = remaining
        logger.info("timer.paused", session_id=session_id, remaining=remaining)
        await self.broadcaster.notify_timer_pause(session_id, remaining=math.ceil(remaining))
        return remaining

    async def resume_timer(self, session_id: int,
                           remaining_seconds: Optional[float] = None) -> Optional[DraftTimer]:
        """Re-arm a countdown for ``remaining_seconds``.

        The acting team is recomputed from the pick log rather than taken from
        the paused timer. Without ``remaining_seconds`` the paused value is used.
        """
        async with self._lock(session_id):
            paused = self.registry.get(session_id)
            if remaining_seconds is None and paused is not None:
                remaining_seconds = paused.paused_remaining
            self.registry.unregister(session_id)
            try:
                session = await self.store.get_session(session_id)
                next_pick = await self.store.get_next_pick(session_id)
            except DraftCompleteError:
                self._complete(session_id)
                return None
            if remaining_seconds is None:
                remaining_seconds = session.pick_time_limit
            team = await self.store.get_team(next_pick.team_id)
            timer = await self._arm(session, next_pick, team, remaining_seconds, resumed=True)
        return timer

    async def reset_circuit_breaker(self, session_id: int) -> None:
        self.breaker.reset(session_id)

    # Turn handling

    async def handle_time_expired(self, session_id: int,
                                  timer: Optional[DraftTimer] = None) -> Optional[AutoPickResult]:
        """The acting team ran out of time: auto-pick for them, then restart.

        Returns ``None`` when ``timer`` is stale or nothing was running.
        """
        with session_context(session_id):
            return await self._expire(session_id, timer)

    async def _expire(self, session_id: int, timer: Optional[DraftTimer]) -> Optional[AutoPickResult]:
        current = self.registry.get(session_id)
        if current is None or (timer is not None and current is not timer):
            logger.debug("timer.stale_expiry_ignored", session_id=session_id)
            return None

        self.registry.unregister(session_id)
        self._states[session_id] = TimerState.EXPIRING
        metrics.increment("timer.expired")
        logger.info("timer.expired", session_id=session_id, team_id=current.team_id,
                    pick_number=current.pick_number)

        result = None
        try:
            team = await self.store.get_team(current.team_id)
            if self.breaker.is_open_for(session_id, team.team_id):
                await self.broadcaster.notify_error(
                    session_id,
                    kind=ErrorKind.MANUAL_PICK_REQUIRED,
                    message=f"Auto-pick is disabled for {team.display_name}. Manual pick required.",
                    team_id=team.team_id,
                )
            else:
                if not team.auto_pick_enabled:
                    await self.store.set_auto_pick_enabled(team.team_id, True)
                    await self.broadcaster.notify_auto_pick_enabled(
                        session_id,
                        team_id=team.team_id,
                        team_name=team.display_name,
                        reason=AutoPickEnabledReason.TIMER_EXPIRED,
                    )
                result = await self.executor.execute_auto_pick(session_id, team.team_id)
                if result.draft_completed:
                    self._complete(session_id)
                    return result
                if not result.success:
                    await self._report_failure(session_id, team, result)
        except Exception as e:
            logger.exception("timer.expiry_failed", session_id=session_id)
            await self._report_unexpected(session_id, e)

        await self._restart(session_id)
        return result

    async def make_pick(self, session_id: int, team_id: int, category: AssetCategory,
                        asset_id: int) -> RecordedPick:
        """Record a manual pick by the team on the clock.

        Raises:
            DraftCompleteError: the draft is over
            NotYourTurnError: ``team_id`` is not on the clock
            PickRejectedError: the asset is taken, no slot is open, or an
                auto-pick got there first
            PersistenceError: the write failed after retries
        """
        next_pick = await self.store.get_next_pick(session_id)
        if next_pick.team_id != team_id:
            raise NotYourTurnError(team_id, next_pick.team_id)
        if self.executor.is_pick_in_progress(session_id):
            raise PickRejectedError(RejectionReason.OUT_OF_TURN, "An auto-pick is in progress")
        await self.recorder.check(session_id, team_id, category, asset_id)

        await self.stop_timer(session_id)
        try:
            pick, _ = await self.recorder.commit(
                session_id, team_id, next_pick.pick_number, category, asset_id
            )
        except DraftEngineError:
            # The clock was stopped for this pick; a failed write must not strand the turn.
            await self._restart(session_id)
            raise
        recorded = await self.recorder.announce(pick)

        if recorded.draft_completed:
            self._complete(session_id)
        else:
            await self._restart(session_id)
        return recorded

    async def shutdown(self) -> None:
        """Cancel every clock and pending expiry task."""
        self.registry.clear()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    # Internals

    async def _arm(self, session: DraftSession, next_pick: NextPick, team: Team,
                   duration: float, resumed: bool = False) -> DraftTimer:
        session_id = session.session_id
        timer = DraftTimer(
            session_id=session_id,
            pick_number=next_pick.pick_number,
            team_id=team.team_id,
            time_limit=session.pick_time_limit,
            duration=duration,
            started_at=self.registry.clock(),
        )
        loop = asyncio.get_running_loop()
        timer.expiry_handle = loop.call_later(duration, self._on_expiry, timer)
        timer.tick_task = asyncio.create_task(self._tick_loop(timer))
        self.registry.register(timer)
        self._states.pop(session_id, None)

        if resumed:
            logger.info("timer.resumed", session_id=session_id, team_id=team.team_id,
                        pick_number=next_pick.pick_number, remaining=duration)
            await self.broadcaster.notify_timer_resume(
                session_id, pick_number=next_pick.pick_number, remaining=math.ceil(duration)
            )
        else:
            logger.info("timer.started", session_id=session_id, team_id=team.team_id,
                        pick_number=next_pick.pick_number, time_limit=duration)
            metrics.increment("timer.started")
            await self.broadcaster.notify_timer_start(
                session_id,
                pick_number=next_pick.pick_number,
                team_id=team.team_id,
                time_limit=duration,
                start_time=int(time.time() * 1000),
            )
        return timer

    def _on_expiry(self, timer: DraftTimer) -> None:
        if self.registry.get(timer.session_id) is not timer:
            return
        task = asyncio.create_task(self.handle_time_expired(timer.session_id, timer))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _tick_loop(self, timer: DraftTimer) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            if self.registry.get(timer.session_id) is not timer:
                return
            remaining = timer.remaining(self.registry.clock())
            try:
                await self.broadcaster.notify_timer_tick(
                    timer.session_id, pick_number=timer.pick_number, remaining=math.ceil(remaining)
                )
            except Exception as e:
                logger.warning("timer.tick_failed", session_id=timer.session_id, error=str(e))

    def _complete(self, session_id: int) -> None:
        self.registry.unregister(session_id)
        self._states[session_id] = TimerState.COMPLETE
        logger.info("timer.draft_complete", session_id=session_id)

    async def _restart(self, session_id: int) -> None:
        """Start the next turn's clock, retrying so the session never stalls."""
        if self.restart_delay:
            await asyncio.sleep(self.restart_delay)
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(3),
                wait=wait_exponential(multiplier=self.restart_delay, max=2.0),
            ):
                with attempt:
                    await self.start_timer(session_id)
        except RetryError as e:
            error = e.last_attempt.exception()
            logger.critical("timer.restart_failed", session_id=session_id, error=str(error))
            metrics.increment("timer.restart_failed")
            await self._report_unexpected(session_id, error)

    async def _report_failure(self, session_id: int, team: Team, result: AutoPickResult) -> None:
        logger.warning("auto_pick.failed", session_id=session_id, team_id=team.team_id,
                       failure=result.failure.value if result.failure else None,
                       error=result.error, circuit_tripped=result.circuit_tripped)

        if result.circuit_tripped or result.failure == AutoPickFailure.CIRCUIT_OPEN:
            message = (f"Auto-pick failed repeatedly for {team.display_name} and has been disabled. "
                       "Manual pick required.")
            await self.broadcaster.notify_error(
                session_id, kind=ErrorKind.MANUAL_PICK_REQUIRED, message=message, team_id=team.team_id
            )
            if result.circuit_tripped:
                await self.broadcaster.notify_auto_pick_enabled(
                    session_id,
                    team_id=team.team_id,
                    team_name=team.display_name,
                    reason=AutoPickEnabledReason.ERROR_DISABLED,
                    enabled=False,
                )
                await self.broadcaster.send_to_team_owner(team.team_id, {
                    "type": "manual_pick_required",
                    "session_id": session_id,
                    "team_id": team.team_id,
                    "message": message,
                })
        elif result.failure == AutoPickFailure.NO_ELIGIBLE_ASSET:
            await self.broadcaster.notify_error(
                session_id,
                kind=ErrorKind.NO_ELIGIBLE_ASSET,
                message=f"No eligible asset left for {team.display_name}. Manual pick required.",
                team_id=team.team_id,
            )
        elif result.failure == AutoPickFailure.STALE_TURN:
            return
        else:
            await self.broadcaster.notify_error(
                session_id,
                kind=ErrorKind.AUTO_PICK_FAILED,
                message=f"Auto-pick failed for {team.display_name}: {result.error}",
                team_id=team.team_id,
            )

    async def _report_unexpected(self, session_id: int, error: Optional[BaseException]) -> None:
        try:
            await self.broadcaster.notify_error(
                session_id, kind=ErrorKind.UNEXPECTED, message=f"Draft timer error: {error}"
            )
        except Exception as e:
            logger.error("timer.error_broadcast_failed", session_id=session_id, error=str(e))
