"""Real-time draft event broadcasting.

Every event is a flat dict ``{"type": ..., "session_id": ..., ..., "timestamp": ms}``.
Transport is pluggable: ``InMemoryBroadcaster`` fans out to in-process
subscribers, ``HttpBroadcaster`` posts to an external pub/sub gateway.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Dict, List, Optional

import httpx

from .config import get_settings
from .draft_logging import get_logger, metrics
from .models import Asset, AutoPickEnabledReason, ErrorKind, NextPick, Pick

logger = get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class Broadcaster(ABC):
    """Builds draft events and hands them to a transport."""

    @abstractmethod
    async def broadcast_to_session(self, session_id: int, message: Dict[str, Any]) -> None:
        """Deliver a message to every client in the session's draft room."""

    @abstractmethod
    async def send_to_team_owner(self, team_id: int, payload: Dict[str, Any]) -> None:
        """Deliver a private message to a team's owner."""

    async def _emit(self, session_id: int, event_type: str, **fields: Any) -> None:
        message = {"type": event_type, "session_id": session_id, **fields, "timestamp": _now_ms()}
        metrics.increment("broadcast.events", tags={"type": event_type})
        await self.broadcast_to_session(session_id, message)

    # Timer events

    async def notify_timer_start(self, session_id: int, *, pick_number: int, team_id: int,
                                 time_limit: float, start_time: int) -> None:
        await self._emit(session_id, "timer_start", pick_number=pick_number, team_id=team_id,
                         time_limit=time_limit, start_time=start_time)

    async def notify_timer_tick(self, session_id: int, *, pick_number: int, remaining: int) -> None:
        await self._emit(session_id, "timer_tick", pick_number=pick_number, remaining=remaining)

    async def notify_timer_pause(self, session_id: int, *, remaining: int) -> None:
        await self._emit(session_id, "timer_pause", remaining=remaining)

    async def notify_timer_resume(self, session_id: int, *, pick_number: int, remaining: int) -> None:
        await self._emit(session_id, "timer_resume", pick_number=pick_number, remaining=remaining)

    async def notify_timer_stop(self, session_id: int) -> None:
        await self._emit(session_id, "timer_stop")

    # Pick events

    async def notify_auto_pick_enabled(self, session_id: int, *, team_id: int, team_name: str,
                                       reason: AutoPickEnabledReason, enabled: bool = True) -> None:
        await self._emit(session_id, "auto_pick_enabled", team_id=team_id, team_name=team_name,
                         enabled=enabled, reason=reason.value)

    async def notify_player_picked(self, session_id: int, *, pick: Pick, asset: Optional[Asset],
                                   team_name: str) -> None:
        await self._emit(
            session_id,
            "player_picked",
            team_id=pick.team_id,
            team_name=team_name,
            asset_type=pick.category.value,
            asset_id=pick.asset_id,
            asset_name=asset.name if asset else "",
            image_url=asset.image_url if asset else None,
            pick_number=pick.pick_number,
            round=pick.round,
            slot=pick.slot,
            auto=pick.auto,
        )

    async def notify_auto_pick(self, session_id: int, *, team_id: int, pick_number: int,
                               asset_name: str, team_name: str) -> None:
        await self._emit(session_id, "auto_pick", team_id=team_id, pick_number=pick_number,
                         asset_name=asset_name, team_name=team_name)

    async def notify_next_pick(self, session_id: int, *, next_pick: NextPick, team_name: str) -> None:
        await self._emit(session_id, "next_pick", team_id=next_pick.team_id, team_name=team_name,
                         pick_number=next_pick.pick_number, round=next_pick.round)

    async def notify_draft_complete(self, session_id: int) -> None:
        await self._emit(session_id, "draft_complete")

    async def notify_error(self, session_id: int, *, kind: ErrorKind, message: str,
                           team_id: Optional[int] = None) -> None:
        fields: Dict[str, Any] = {"kind": kind.value, "message": message}
        if team_id is not None:
            fields["team_id"] = team_id
        await self._emit(session_id, "error", **fields)


class InMemoryBroadcaster(Broadcaster):
    """Records every event and fans out to subscriber queues."""

    def __init__(self):
        self.messages: List[Dict[str, Any]] = []
        self.owner_messages: Dict[int, List[Dict[str, Any]]] = defaultdict(list)
        self._subscribers: Dict[int, List[asyncio.Queue]] = defaultdict(list)

    async def broadcast_to_session(self, session_id: int, message: Dict[str, Any]) -> None:
        self.messages.append(message)
        for queue in self._subscribers.get(session_id, []):
            queue.put_nowait(message)

    async def send_to_team_owner(self, team_id: int, payload: Dict[str, Any]) -> None:
        self.owner_messages[team_id].append(payload)

    def subscribe(self, session_id: int) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers[session_id].append(queue)
        return queue

    def unsubscribe(self, session_id: int, queue: asyncio.Queue) -> None:
        if queue in self._subscribers.get(session_id, []):
            self._subscribers[session_id].remove(queue)

    def of_type(self, event_type: str, session_id: Optional[int] = None) -> List[Dict[str, Any]]:
        return [
            m for m in self.messages
            if m["type"] == event_type and (session_id is None or m["session_id"] == session_id)
        ]

    def types(self) -> List[str]:
        return [m["type"] for m in self.messages]


class HttpBroadcaster(Broadcaster):
    """Posts events to an external pub/sub gateway.

    Delivery is best-effort: transport errors are logged and counted but
    never raised, so a gateway outage cannot fail a pick.
    """

    def __init__(self, base_url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        settings = get_settings()
        self.base_url = (base_url or settings.BROADCAST_GATEWAY_URL or "").rstrip("/")
        if not self.base_url and client is None:
            raise ValueError("HttpBroadcaster needs BROADCAST_GATEWAY_URL or a client")
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(settings.BROADCAST_TIMEOUT_S),
        )

    async def _post(self, path: str, payload: Dict[str, Any]) -> None:
        try:
            response = await self._client.post(path, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            metrics.increment("broadcast.failures")
            logger.warning("broadcast.delivery_failed", path=path, error=str(e),
                           event_type=payload.get("type"))

    async def broadcast_to_session(self, session_id: int, message: Dict[str, Any]) -> None:
        await self._post(f"/sessions/{session_id}/events", message)

    async def send_to_team_owner(self, team_id: int, payload: Dict[str, Any]) -> None:
        await self._post(f"/teams/{team_id}/messages", payload)

    async def aclose(self) -> None:
        await self._client.aclose()
