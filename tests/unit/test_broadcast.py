"""Unit tests for draft event broadcasting."""

import json

import httpx
import pytest

from draft_engine.broadcast import HttpBroadcaster, InMemoryBroadcaster
from draft_engine.draft_logging import metrics
from draft_engine.models import AssetCategory, AutoPickEnabledReason, ErrorKind, NextPick, Pick


@pytest.mark.asyncio
async def test_event_shape_and_subscribers():
    broadcaster = InMemoryBroadcaster()
    queue = broadcaster.subscribe(7)

    await broadcaster.notify_timer_start(7, pick_number=3, team_id=2, time_limit=90, start_time=1)
    await broadcaster.notify_timer_stop(8)

    message = queue.get_nowait()
    assert message["type"] == "timer_start"
    assert message["session_id"] == 7
    assert message["team_id"] == 2
    assert isinstance(message["timestamp"], int)
    assert queue.empty()
    assert broadcaster.types() == ["timer_start", "timer_stop"]
    assert metrics.counter("broadcast.events", {"type": "timer_start"}) == 1

    broadcaster.unsubscribe(7, queue)
    await broadcaster.notify_draft_complete(7)
    assert queue.empty()


@pytest.mark.asyncio
async def test_pick_events_carry_asset_and_slot():
    broadcaster = InMemoryBroadcaster()
    pick = Pick(session_id=1, team_id=4, pick_number=9, round=2, slot="FLEX",
                category=AssetCategory.PHARMACY, asset_id=31, auto=True)

    await broadcaster.notify_player_picked(1, pick=pick, asset=None, team_name="Greenleaf")
    await broadcaster.notify_next_pick(
        1, next_pick=NextPick(pick_number=10, round=2, team_id=5, pick_in_round=2), team_name="Team 5"
    )
    await broadcaster.notify_auto_pick_enabled(
        1, team_id=4, team_name="Greenleaf", reason=AutoPickEnabledReason.AUTO_PICK_SKIP
    )
    await broadcaster.notify_error(1, kind=ErrorKind.AUTO_PICK_FAILED, message="boom")

    picked, next_pick, enabled, error = broadcaster.messages
    assert (picked["asset_type"], picked["slot"], picked["auto"], picked["asset_name"]) == (
        "pharmacy", "FLEX", True, ""
    )
    assert (next_pick["pick_number"], next_pick["team_id"]) == (10, 5)
    assert (enabled["reason"], enabled["enabled"]) == ("auto_pick_skip", True)
    assert "team_id" not in error and error["kind"] == "auto_pick_failed"


@pytest.mark.asyncio
async def test_http_broadcaster_posts_to_gateway():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(202)

    client = httpx.AsyncClient(base_url="https://gateway.test", transport=httpx.MockTransport(handler))
    broadcaster = HttpBroadcaster(client=client)

    await broadcaster.notify_timer_pause(3, remaining=42)
    await broadcaster.send_to_team_owner(11, {"type": "manual_pick_required"})
    await broadcaster.aclose()

    assert [r.url.path for r in requests] == ["/sessions/3/events", "/teams/11/messages"]
    body = json.loads(requests[0].content)
    assert (body["type"], body["remaining"]) == ("timer_pause", 42)


@pytest.mark.asyncio
async def test_http_broadcaster_swallows_transport_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    client = httpx.AsyncClient(base_url="https://gateway.test", transport=httpx.MockTransport(handler))
    broadcaster = HttpBroadcaster(client=client)

    await broadcaster.notify_draft_complete(3)
    await broadcaster.aclose()

    assert metrics.counter("broadcast.failures") == 1


def test_http_broadcaster_requires_gateway():
    with pytest.raises(ValueError):
        HttpBroadcaster()
