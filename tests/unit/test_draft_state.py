"""Unit tests for turn order derived from the pick log."""

import pytest

from draft_engine.draft_state import (
    build_rosters,
    compute_next_pick,
    draft_summary,
    is_draft_complete,
    team_index_for_pick,
)
from draft_engine.errors import DraftCompleteError
from draft_engine.models import AssetCategory, DraftSession, DraftType, Pick, SlotConfig

MFG = AssetCategory.MANUFACTURER


def _session(draft_type=DraftType.SNAKE, team_ids=(10, 20, 30), completed=False):
    return DraftSession(
        session_id=1,
        team_ids=list(team_ids),
        draft_type=draft_type,
        slot_config=SlotConfig(categories={MFG: 2}),
        completed=completed,
    )


def _replay(session, count):
    """Pick log of ``count`` manufacturer picks following the rotation."""
    picks = []
    for n in range(count):
        nxt = compute_next_pick(session, picks)
        roster = build_rosters(session, picks)[nxt.team_id]
        slot = roster.next_slot_for(MFG).slot
        picks.append(Pick(session_id=1, team_id=nxt.team_id, pick_number=nxt.pick_number,
                          round=nxt.round, slot=slot, category=MFG, asset_id=n + 1))
    return picks


class TestRotation:

    def test_linear_repeats_order_every_round(self):
        assert [team_index_for_pick(n, 3, DraftType.LINEAR) for n in range(1, 7)] == [0, 1, 2, 0, 1, 2]

    def test_snake_reverses_even_rounds(self):
        assert [team_index_for_pick(n, 3, DraftType.SNAKE) for n in range(1, 10)] == [
            0, 1, 2, 2, 1, 0, 0, 1, 2
        ]

    def test_next_pick_walks_snake_order(self):
        session = _session()
        picks = _replay(session, 4)
        assert [p.team_id for p in picks] == [10, 20, 30, 30]
        nxt = compute_next_pick(session, picks)
        assert (nxt.pick_number, nxt.round, nxt.team_id, nxt.pick_in_round) == (5, 2, 20, 2)

    def test_single_team_always_acts(self):
        session = _session(team_ids=(7,))
        picks = _replay(session, 2)
        assert compute_next_pick(session, picks).team_id == 7


class TestDeterminism:

    def test_same_log_same_answer(self):
        session = _session(DraftType.LINEAR)
        picks = _replay(session, 5)
        answers = {compute_next_pick(session, list(picks)) for _ in range(10)}
        assert len(answers) == 1

    def test_answer_does_not_depend_on_log_order(self):
        session = _session()
        picks = _replay(session, 5)
        assert compute_next_pick(session, picks) == compute_next_pick(session, list(reversed(picks)))


class TestCompletion:

    def test_full_rosters_complete_the_draft(self):
        session = _session(team_ids=(10, 20))
        picks = _replay(session, session.total_picks)
        assert len(picks) == 6
        assert is_draft_complete(session, picks)
        with pytest.raises(DraftCompleteError):
            compute_next_pick(session, picks)

    def test_completed_flag_short_circuits(self):
        session = _session(completed=True)
        with pytest.raises(DraftCompleteError):
            compute_next_pick(session, [])

    def test_summary_counts(self):
        session = _session()
        picks = _replay(session, 2)
        assert draft_summary(session, picks) == {
            "picks_made": 2,
            "total_picks": 9,
            "rounds": 3,
            "teams": 3,
        }
