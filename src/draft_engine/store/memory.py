"""In-process store used by tests, the CLI simulator and single-node demos."""

import asyncio
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from ..draft_logging import get_logger
from ..draft_state import is_draft_complete
from ..errors import SessionNotFoundError, TeamNotFoundError
from ..models import Asset, AssetCategory, DraftSession, Pick, Team
from .base import AssetPool, DraftStore, authorize_pick

logger = get_logger(__name__)


class InMemoryDraftStore(DraftStore, AssetPool):
    """Dict-backed store; a per-session lock serialises check-and-write."""

    def __init__(self):
        self._sessions: Dict[int, DraftSession] = {}
        self._teams: Dict[int, Team] = {}
        self._picks: Dict[int, List[Pick]] = defaultdict(list)
        self._assets: Dict[Tuple[AssetCategory, int], Asset] = {}
        self._locks: Dict[int, asyncio.Lock] = {}

    # Setup helpers

    def add_session(self, session: DraftSession, teams: Optional[Iterable[Team]] = None) -> None:
        self._sessions[session.session_id] = session
        for team_id in session.team_ids:
            self._teams.setdefault(team_id, Team(team_id=team_id, session_id=session.session_id))
        for team in teams or []:
            self._teams[team.team_id] = team

    def add_assets(self, assets: Iterable[Asset]) -> None:
        for asset in assets:
            self._assets[asset.key] = asset

    def _lock(self, session_id: int) -> asyncio.Lock:
        if session_id not in self._locks:
            self._locks[session_id] = asyncio.Lock()
        return self._locks[session_id]

    # DraftStore

    async def get_session(self, session_id: int) -> DraftSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(session_id) from None

    async def get_team(self, team_id: int) -> Team:
        try:
            return self._teams[team_id]
        except KeyError:
            raise TeamNotFoundError(team_id) from None

    async def list_teams(self, session_id: int) -> List[Team]:
        session = await self.get_session(session_id)
        return [self._teams[team_id] for team_id in session.team_ids]

    async def list_picks(self, session_id: int) -> List[Pick]:
        return list(self._picks.get(session_id, []))

    async def record_pick(self, session_id: int, team_id: int, pick_number: int,
                          category: AssetCategory, asset_id: int, auto: bool = False) -> Pick:
        async with self._lock(session_id):
            session = await self.get_session(session_id)
            picks = self._picks[session_id]
            round_number, slot = authorize_pick(session, picks, team_id, pick_number, category, asset_id)
            pick = Pick(
                session_id=session_id,
                team_id=team_id,
                pick_number=pick_number,
                round=round_number,
                slot=slot,
                category=category,
                asset_id=asset_id,
                auto=auto,
            )
            picks.append(pick)
            if is_draft_complete(session, picks):
                self._sessions[session_id] = session.model_copy(update={"completed": True})
            logger.debug("store.pick_recorded", session_id=session_id, team_id=team_id,
                         pick_number=pick_number, slot=slot)
            return pick

    async def set_auto_pick_enabled(self, team_id: int, enabled: bool) -> None:
        team = await self.get_team(team_id)
        self._teams[team_id] = team.model_copy(update={"auto_pick_enabled": enabled})

    async def mark_completed(self, session_id: int) -> None:
        session = await self.get_session(session_id)
        self._sessions[session_id] = session.model_copy(update={"completed": True})

    # AssetPool

    async def list_unpicked_assets(self, session_id: int,
                                   category: Optional[AssetCategory] = None) -> List[Asset]:
        taken = {pick.asset_key for pick in self._picks.get(session_id, [])}
        return [
            asset for key, asset in self._assets.items()
            if key not in taken and (category is None or asset.category == category)
        ]

    async def get_asset(self, category: AssetCategory, asset_id: int) -> Optional[Asset]:
        return self._assets.get((category, asset_id))
