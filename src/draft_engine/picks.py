"""Pick recording shared by manual picks and auto-picks.

A pick goes through three steps:

1. an advisory eligibility check against the current pick log (fast feedback,
   no lock held),
2. the authoritative write, where the store re-checks eligibility inside its
   lock or transaction and transient failures are retried,
3. announcement of the pick and of the next turn (or draft completion).
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from .broadcast import Broadcaster
from .draft_logging import get_logger, metrics
from .draft_state import build_rosters, compute_next_pick
from .eligibility import can_assign_slot, taken_keys
from .errors import DraftCompleteError
from .models import Asset, AssetCategory, NextPick, Pick, Team
from .resilience import RetryConfig
from .store import AssetPool, DraftStore

logger = get_logger(__name__)


@dataclass
class RecordedPick:
    """A persisted pick plus what happened to the draft because of it."""

    pick: Pick
    asset: Optional[Asset]
    team: Team
    next_pick: Optional[NextPick] = None
    draft_completed: bool = False


class PickRecorder:
    """Advisory check, authoritative write and announcement of picks."""

    def __init__(self, store: DraftStore, pool: AssetPool, broadcaster: Broadcaster,
                 retry_config: Optional[RetryConfig] = None):
        self.store = store
        self.pool = pool
        self.broadcaster = broadcaster
        self.retry_config = retry_config or RetryConfig.from_settings()

    async def check(self, session_id: int, team_id: int, category: AssetCategory, asset_id: int) -> str:
        """Advisory eligibility check.

        Returns:
            The slot the asset would take

        Raises:
            PickRejectedError: the asset is taken or no slot is open for it
        """
        session = await self.store.get_session(session_id)
        picks = await self.store.list_picks(session_id)
        roster = [p for p in picks if p.team_id == team_id]
        eligibility = can_assign_slot(roster, category, asset_id, taken_keys(picks), session.slot_config)
        return eligibility.raise_for_rejection()

    async def commit(self, session_id: int, team_id: int, pick_number: int,
                     category: AssetCategory, asset_id: int, auto: bool = False) -> Tuple[Pick, int]:
        """Write the pick, retrying transient persistence failures.

        Returns:
            (pick, attempts) where attempts counts store calls made

        Raises:
            PickRejectedError: the store's final re-check failed (never retried)
            PersistenceError: every attempt failed
        """
        attempts = 0
        async for attempt in self.retry_config.retrying():
            with attempt:
                attempts += 1
                if attempts > 1:
                    metrics.increment("picks.persistence_retry")
                    logger.warning("pick.retrying", session_id=session_id, team_id=team_id,
                                   pick_number=pick_number, attempt=attempts)
                pick = await self.store.record_pick(
                    session_id, team_id, pick_number, category, asset_id, auto=auto
                )
        metrics.increment("picks.recorded", tags={"auto": str(auto).lower()})
        logger.info("pick.recorded", session_id=session_id, team_id=team_id,
                    pick_number=pick.pick_number, slot=pick.slot,
                    category=pick.category.value, asset_id=pick.asset_id, auto=auto)
        return pick, attempts

    async def announce(self, pick: Pick) -> RecordedPick:
        """Broadcast a recorded pick and the resulting turn state."""
        session_id = pick.session_id
        team = await self.store.get_team(pick.team_id)
        asset = await self.pool.get_asset(pick.category, pick.asset_id)

        await self.broadcaster.notify_player_picked(
            session_id, pick=pick, asset=asset, team_name=team.display_name
        )
        if pick.auto:
            await self.broadcaster.notify_auto_pick(
                session_id,
                team_id=team.team_id,
                pick_number=pick.pick_number,
                asset_name=asset.name if asset else "",
                team_name=team.display_name,
            )

        recorded = RecordedPick(pick=pick, asset=asset, team=team)
        session = await self.store.get_session(session_id)
        picks = await self.store.list_picks(session_id)
        try:
            recorded.next_pick = compute_next_pick(session, picks)
        except DraftCompleteError:
            recorded.draft_completed = True
            await self.store.mark_completed(session_id)
            await self.broadcaster.notify_draft_complete(session_id)
            logger.info("draft.completed", session_id=session_id, picks=len(picks))
            return recorded

        next_team = await self.store.get_team(recorded.next_pick.team_id)
        await self.broadcaster.notify_next_pick(
            session_id, next_pick=recorded.next_pick, team_name=next_team.display_name
        )
        return recorded


async def roster_board(store: DraftStore, session_id: int) -> dict:
    """Slot-by-slot view of every roster, keyed by team id."""
    session = await store.get_session(session_id)
    picks = await store.list_picks(session_id)
    rosters = build_rosters(session, picks)
    return {
        team_id: {slot: rosters[team_id].slots.get(slot) for slot in session.slot_config.slot_names()}
        for team_id in session.team_ids
    }
