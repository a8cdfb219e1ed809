"""Persistence and eligible-pool interfaces consumed by the draft engine."""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..draft_state import build_rosters, compute_next_pick
from ..eligibility import taken_keys
from ..errors import DraftCompleteError, PickRejectedError
from ..models import Asset, AssetCategory, DraftSession, NextPick, Pick, RejectionReason, Team


class DraftStore(ABC):
    """Relational store of sessions, teams and the append-only pick log."""

    @abstractmethod
    async def get_session(self, session_id: int) -> DraftSession:
        """Raises ``SessionNotFoundError``."""

    @abstractmethod
    async def get_team(self, team_id: int) -> Team:
        """Raises ``TeamNotFoundError``."""

    @abstractmethod
    async def list_teams(self, session_id: int) -> List[Team]:
        """Teams in draft-position order."""

    @abstractmethod
    async def list_picks(self, session_id: int) -> List[Pick]:
        """Pick log ordered by pick number."""

    @abstractmethod
    async def record_pick(self, session_id: int, team_id: int, pick_number: int,
                          category: AssetCategory, asset_id: int, auto: bool = False) -> Pick:
        """Atomically re-check eligibility and append a pick.

        Raises:
            PickRejectedError: the asset is taken, the turn moved on, or the
                roster has no slot for the category
            PersistenceError: transient storage failure
        """

    @abstractmethod
    async def set_auto_pick_enabled(self, team_id: int, enabled: bool) -> None:
        ...

    @abstractmethod
    async def mark_completed(self, session_id: int) -> None:
        ...

    async def get_next_pick(self, session_id: int) -> NextPick:
        """Raises ``DraftCompleteError`` when every roster is full."""
        session = await self.get_session(session_id)
        picks = await self.list_picks(session_id)
        return compute_next_pick(session, picks)


class AssetPool(ABC):
    """Source of draftable assets and their latest scores."""

    @abstractmethod
    async def list_unpicked_assets(self, session_id: int,
                                   category: Optional[AssetCategory] = None) -> List[Asset]:
        ...

    @abstractmethod
    async def get_asset(self, category: AssetCategory, asset_id: int) -> Optional[Asset]:
        ...


def authorize_pick(session: DraftSession, picks: List[Pick], team_id: int, pick_number: int,
                   category: AssetCategory, asset_id: int) -> tuple:
    """Final eligibility check, run under the store's lock or transaction.

    Returns:
        (round, slot) for the new pick

    Raises:
        PickRejectedError
    """
    if (category, asset_id) in taken_keys(picks):
        raise PickRejectedError(
            RejectionReason.ASSET_TAKEN,
            f"{category.value} {asset_id} has already been drafted",
        )
    try:
        next_pick = compute_next_pick(session, picks)
    except DraftCompleteError:
        raise PickRejectedError(RejectionReason.OUT_OF_TURN, "Draft is complete")
    if next_pick.pick_number != pick_number or next_pick.team_id != team_id:
        raise PickRejectedError(
            RejectionReason.OUT_OF_TURN,
            f"Pick {pick_number} by team {team_id} is stale; "
            f"pick {next_pick.pick_number} belongs to team {next_pick.team_id}",
        )
    roster = build_rosters(session, picks)[team_id]
    slot = roster.next_slot_for(category).raise_for_rejection()
    return next_pick.round, slot
