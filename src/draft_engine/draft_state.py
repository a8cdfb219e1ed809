"""Draft state reader: derives whose turn it is from the pick log alone.

Nothing here caches or mutates state. The same session and pick log always
produce the same answer.
"""

from typing import Dict, Iterable, List

from .eligibility import RosterState
from .errors import DraftCompleteError
from .models import DraftSession, DraftType, NextPick, Pick


def team_index_for_pick(pick_number: int, team_count: int, draft_type: DraftType) -> int:
    """Zero-based draft position acting on ``pick_number`` (1-based)."""
    round_number = (pick_number - 1) // team_count + 1
    position = (pick_number - 1) % team_count
    if draft_type == DraftType.SNAKE and round_number % 2 == 0:
        return team_count - 1 - position
    return position


def build_rosters(session: DraftSession, picks: Iterable[Pick]) -> Dict[int, RosterState]:
    """Replay the pick log into one roster per team."""
    by_team: Dict[int, List[Pick]] = {team_id: [] for team_id in session.team_ids}
    for pick in picks:
        by_team.setdefault(pick.team_id, []).append(pick)
    return {
        team_id: RosterState.from_picks(team_picks, session.slot_config)
        for team_id, team_picks in by_team.items()
    }


def is_draft_complete(session: DraftSession, picks: Iterable[Pick]) -> bool:
    rosters = build_rosters(session, picks)
    return all(rosters[team_id].is_full for team_id in session.team_ids)


def compute_next_pick(session: DraftSession, picks: Iterable[Pick]) -> NextPick:
    """Return the next pick number and acting team.

    Raises:
        DraftCompleteError: every team's every slot (including flex) is filled
    """
    picks = list(picks)
    if session.completed or is_draft_complete(session, picks):
        raise DraftCompleteError(session.session_id)

    pick_number = len(picks) + 1
    team_count = session.team_count
    index = team_index_for_pick(pick_number, team_count, session.draft_type)
    return NextPick(
        pick_number=pick_number,
        round=(pick_number - 1) // team_count + 1,
        team_id=session.team_ids[index],
        pick_in_round=(pick_number - 1) % team_count + 1,
    )


def draft_summary(session: DraftSession, picks: Iterable[Pick]) -> Dict[str, int]:
    picks = list(picks)
    return {
        "picks_made": len(picks),
        "total_picks": session.total_picks,
        "rounds": session.rounds,
        "teams": session.team_count,
    }
