"""Relational draft store on SQLAlchemy Core (async).

Pick uniqueness is enforced twice: ``authorize_pick`` inside the write
transaction, and unique constraints on (session, pick number) and
(session, category, asset) so a second process can never win the same asset.
"""

import asyncio
from datetime import UTC, datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    insert,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from ..draft_logging import get_logger
from ..draft_state import is_draft_complete
from ..errors import (
    DraftEngineError,
    PersistenceError,
    PickRejectedError,
    SessionNotFoundError,
    TeamNotFoundError,
)
from ..models import (
    Asset,
    AssetCategory,
    DraftSession,
    DraftType,
    Pick,
    RejectionReason,
    SlotConfig,
    Team,
)
from .base import AssetPool, DraftStore, authorize_pick

logger = get_logger(__name__)

metadata = MetaData()

draft_sessions = Table(
    "draft_sessions", metadata,
    Column("session_id", Integer, primary_key=True),
    Column("pick_time_limit", Float, nullable=False, default=90),
    Column("draft_type", String, nullable=False, default=DraftType.SNAKE.value),
    Column("slot_config", JSON, nullable=False),
    Column("completed", Boolean, nullable=False, default=False),
)

draft_teams = Table(
    "draft_teams", metadata,
    Column("team_id", Integer, primary_key=True),
    Column("session_id", Integer, ForeignKey("draft_sessions.session_id"), nullable=False),
    Column("draft_position", Integer, nullable=False),
    Column("name", String, nullable=False, default=""),
    Column("owner_id", Integer, nullable=True),
    Column("auto_pick_enabled", Boolean, nullable=False, default=False),
    Column("updated_at", DateTime(timezone=True), nullable=True),
)

draft_picks = Table(
    "draft_picks", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("session_id", Integer, ForeignKey("draft_sessions.session_id"), nullable=False),
    Column("team_id", Integer, ForeignKey("draft_teams.team_id"), nullable=False),
    Column("pick_number", Integer, nullable=False),
    Column("round", Integer, nullable=False),
    Column("slot", String, nullable=False),
    Column("category", String, nullable=False),
    Column("asset_id", Integer, nullable=False),
    Column("auto", Boolean, nullable=False, default=False),
    Column("picked_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("session_id", "pick_number", name="uq_draft_picks_session_pick"),
    UniqueConstraint("session_id", "category", "asset_id", name="uq_draft_picks_session_asset"),
)

draft_assets = Table(
    "draft_assets", metadata,
    Column("category", String, primary_key=True),
    Column("asset_id", Integer, primary_key=True),
    Column("name", String, nullable=False, default=""),
    Column("latest_score", Float, nullable=True),
    Column("image_url", String, nullable=True),
)


def _session_from_row(row, team_ids: List[int]) -> DraftSession:
    return DraftSession(
        session_id=row.session_id,
        team_ids=team_ids,
        pick_time_limit=row.pick_time_limit,
        draft_type=DraftType(row.draft_type),
        slot_config=SlotConfig(categories={AssetCategory(k): v for k, v in row.slot_config.items()}),
        completed=bool(row.completed),
    )


def _team_from_row(row) -> Team:
    return Team(
        team_id=row.team_id,
        session_id=row.session_id,
        name=row.name or "",
        owner_id=row.owner_id,
        auto_pick_enabled=bool(row.auto_pick_enabled),
    )


def _pick_from_row(row) -> Pick:
    picked_at = row.picked_at
    if picked_at is not None and picked_at.tzinfo is None:
        picked_at = picked_at.replace(tzinfo=UTC)
    return Pick(
        session_id=row.session_id,
        team_id=row.team_id,
        pick_number=row.pick_number,
        round=row.round,
        slot=row.slot,
        category=AssetCategory(row.category),
        asset_id=row.asset_id,
        auto=bool(row.auto),
        picked_at=picked_at,
    )


def _asset_from_row(row) -> Asset:
    return Asset(
        asset_id=row.asset_id,
        category=AssetCategory(row.category),
        name=row.name or "",
        latest_score=row.latest_score,
        image_url=row.image_url,
    )


class SqlDraftStore(DraftStore, AssetPool):
    """DraftStore and AssetPool over an async SQLAlchemy engine."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._locks: Dict[int, asyncio.Lock] = {}

    def _lock(self, session_id: int) -> asyncio.Lock:
        if session_id not in self._locks:
            self._locks[session_id] = asyncio.Lock()
        return self._locks[session_id]

    async def create_tables(self) -> None:
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(metadata.create_all)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to create draft tables: {e}") from e
        logger.info("Draft tables created")

    async def seed_session(self, session: DraftSession, teams: Optional[Iterable[Team]] = None) -> None:
        """Insert a session and its teams (in draft-position order)."""
        named = {team.team_id: team for team in teams or []}
        try:
            async with self.engine.begin() as conn:
                await conn.execute(insert(draft_sessions).values(
                    session_id=session.session_id,
                    pick_time_limit=session.pick_time_limit,
                    draft_type=session.draft_type.value,
                    slot_config={c.value: n for c, n in session.slot_config.categories.items()},
                    completed=session.completed,
                ))
                for position, team_id in enumerate(session.team_ids, start=1):
                    team = named.get(team_id) or Team(team_id=team_id, session_id=session.session_id)
                    await conn.execute(insert(draft_teams).values(
                        team_id=team_id,
                        session_id=session.session_id,
                        draft_position=position,
                        name=team.name,
                        owner_id=team.owner_id,
                        auto_pick_enabled=team.auto_pick_enabled,
                    ))
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to seed session {session.session_id}: {e}") from e

    async def add_assets(self, assets: Iterable[Asset]) -> None:
        rows = [
            {
                "category": a.category.value,
                "asset_id": a.asset_id,
                "name": a.name,
                "latest_score": a.latest_score,
                "image_url": a.image_url,
            }
            for a in assets
        ]
        if not rows:
            return
        try:
            async with self.engine.begin() as conn:
                await conn.execute(insert(draft_assets), rows)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to add assets: {e}") from e

    # Reads

    async def _load_session(self, conn: AsyncConnection, session_id: int) -> DraftSession:
        row = (await conn.execute(
            select(draft_sessions).where(draft_sessions.c.session_id == session_id)
        )).fetchone()
        if row is None:
            raise SessionNotFoundError(session_id)
        team_ids = (await conn.execute(
            select(draft_teams.c.team_id)
            .where(draft_teams.c.session_id == session_id)
            .order_by(draft_teams.c.draft_position)
        )).scalars().all()
        return _session_from_row(row, list(team_ids))

    async def _load_picks(self, conn: AsyncConnection, session_id: int) -> List[Pick]:
        rows = (await conn.execute(
            select(draft_picks)
            .where(draft_picks.c.session_id == session_id)
            .order_by(draft_picks.c.pick_number)
        )).fetchall()
        return [_pick_from_row(r) for r in rows]

    async def get_session(self, session_id: int) -> DraftSession:
        try:
            async with self.engine.connect() as conn:
                return await self._load_session(conn, session_id)
        except SQLAlchemyError as e:
            raise PersistenceError(str(e)) from e

    async def get_team(self, team_id: int) -> Team:
        try:
            async with self.engine.connect() as conn:
                row = (await conn.execute(
                    select(draft_teams).where(draft_teams.c.team_id == team_id)
                )).fetchone()
        except SQLAlchemyError as e:
            raise PersistenceError(str(e)) from e
        if row is None:
            raise TeamNotFoundError(team_id)
        return _team_from_row(row)

    async def list_teams(self, session_id: int) -> List[Team]:
        try:
            async with self.engine.connect() as conn:
                rows = (await conn.execute(
                    select(draft_teams)
                    .where(draft_teams.c.session_id == session_id)
                    .order_by(draft_teams.c.draft_position)
                )).fetchall()
        except SQLAlchemyError as e:
            raise PersistenceError(str(e)) from e
        return [_team_from_row(r) for r in rows]

    async def list_picks(self, session_id: int) -> List[Pick]:
        try:
            async with self.engine.connect() as conn:
                return await self._load_picks(conn, session_id)
        except SQLAlchemyError as e:
            raise PersistenceError(str(e)) from e

    # Writes

    async def record_pick(self, session_id: int, team_id: int, pick_number: int,
                          category: AssetCategory, asset_id: int, auto: bool = False) -> Pick:
        async with self._lock(session_id):
            try:
                async with self.engine.begin() as conn:
                    session = await self._load_session(conn, session_id)
                    picks = await self._load_picks(conn, session_id)
                    round_number, slot = authorize_pick(
                        session, picks, team_id, pick_number, category, asset_id
                    )
                    pick = Pick(
                        session_id=session_id,
                        team_id=team_id,
                        pick_number=pick_number,
                        round=round_number,
                        slot=slot,
                        category=category,
                        asset_id=asset_id,
                        auto=auto,
                        picked_at=datetime.now(UTC),
                    )
                    await conn.execute(insert(draft_picks).values(
                        session_id=session_id,
                        team_id=team_id,
                        pick_number=pick_number,
                        round=round_number,
                        slot=slot,
                        category=category.value,
                        asset_id=asset_id,
                        auto=auto,
                        picked_at=pick.picked_at,
                    ))
                    if is_draft_complete(session, picks + [pick]):
                        await conn.execute(
                            update(draft_sessions)
                            .where(draft_sessions.c.session_id == session_id)
                            .values(completed=True)
                        )
                    return pick
            except IntegrityError as e:
                reason = (
                    RejectionReason.ASSET_TAKEN if "asset" in str(e.orig).lower()
                    else RejectionReason.OUT_OF_TURN
                )
                raise PickRejectedError(reason, f"Pick conflicted with a concurrent write: {e.orig}") from e
            except DraftEngineError:
                raise
            except SQLAlchemyError as e:
                raise PersistenceError(f"Failed to record pick {pick_number}: {e}") from e

    async def set_auto_pick_enabled(self, team_id: int, enabled: bool) -> None:
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(
                    update(draft_teams)
                    .where(draft_teams.c.team_id == team_id)
                    .values(auto_pick_enabled=enabled, updated_at=datetime.now(UTC))
                )
                updated = result.rowcount
        except SQLAlchemyError as e:
            raise PersistenceError(str(e)) from e
        if updated == 0:
            raise TeamNotFoundError(team_id)

    async def mark_completed(self, session_id: int) -> None:
        try:
            async with self.engine.begin() as conn:
                await conn.execute(
                    update(draft_sessions)
                    .where(draft_sessions.c.session_id == session_id)
                    .values(completed=True)
                )
        except SQLAlchemyError as e:
            raise PersistenceError(str(e)) from e

    # AssetPool

    async def list_unpicked_assets(self, session_id: int,
                                   category: Optional[AssetCategory] = None) -> List[Asset]:
        picked = (
            select(draft_picks.c.asset_id)
            .where(draft_picks.c.session_id == session_id)
            .where(draft_picks.c.category == draft_assets.c.category)
            .where(draft_picks.c.asset_id == draft_assets.c.asset_id)
        )
        query = (
            select(draft_assets)
            .where(~picked.exists())
            .order_by(draft_assets.c.category, draft_assets.c.asset_id)
        )
        if category is not None:
            query = query.where(draft_assets.c.category == category.value)
        try:
            async with self.engine.connect() as conn:
                rows = (await conn.execute(query)).fetchall()
        except SQLAlchemyError as e:
            raise PersistenceError(str(e)) from e
        return [_asset_from_row(r) for r in rows]

    async def get_asset(self, category: AssetCategory, asset_id: int) -> Optional[Asset]:
        try:
            async with self.engine.connect() as conn:
                row = (await conn.execute(
                    select(draft_assets)
                    .where(draft_assets.c.category == category.value)
                    .where(draft_assets.c.asset_id == asset_id)
                )).fetchone()
        except SQLAlchemyError as e:
            raise PersistenceError(str(e)) from e
        return _asset_from_row(row) if row else None
