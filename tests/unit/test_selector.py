"""Unit tests for best-available selection and its tie-break order."""

import pytest

from draft_engine.eligibility import RosterState
from draft_engine.errors import NoEligibleAssetError
from draft_engine.models import Asset, AssetCategory, Pick, SlotConfig
from draft_engine.selector import best_of, rank_by_latest_score, select_best_available

MFG = AssetCategory.MANUFACTURER
STRAIN = AssetCategory.CANNABIS_STRAIN
PRODUCT = AssetCategory.PRODUCT

CONFIG = SlotConfig(categories={MFG: 1, STRAIN: 1})


def _asset(asset_id, category=MFG, score=None):
    return Asset(asset_id=asset_id, category=category, latest_score=score)


def _roster(*picks):
    roster = RosterState(slot_config=CONFIG)
    for n, (category, asset_id) in enumerate(picks, start=1):
        pick = Pick(session_id=1, team_id=1, pick_number=n, round=n, slot="?",
                    category=category, asset_id=asset_id)
        roster.add(pick, roster.next_slot_for(category).slot)
    return roster


def test_highest_score_wins():
    pool = [_asset(1, score=10.0), _asset(2, score=30.0), _asset(3, score=20.0)]
    assert select_best_available(_roster(), pool, team_id=1).asset_id == 2


def test_score_tie_breaks_on_lowest_asset_id():
    pool = [_asset(9, score=50.0), _asset(4, score=50.0), _asset(6, score=50.0)]
    assert select_best_available(_roster(), pool, team_id=1).asset_id == 4


def test_unscored_assets_rank_last_then_by_id():
    pool = [_asset(3), _asset(2), _asset(8, score=0.0)]
    assert [a.asset_id for a in sorted(pool, key=rank_by_latest_score)] == [8, 2, 3]


def test_first_open_category_slot_decides_category():
    pool = [_asset(1, MFG, 5.0), _asset(2, STRAIN, 99.0)]
    assert select_best_available(_roster(), pool, team_id=1).category == MFG


def test_skips_category_with_empty_pool():
    pool = [_asset(2, STRAIN, 1.0)]
    assert select_best_available(_roster(), pool, team_id=1).asset_id == 2


def test_flex_takes_best_of_full_categories():
    roster = _roster((MFG, 100), (STRAIN, 200))
    pool = [_asset(1, MFG, 10.0), _asset(2, STRAIN, 40.0), _asset(3, PRODUCT, 99.0)]
    choice = select_best_available(roster, pool, team_id=1)
    # Product has no slots in this league, so it cannot go to flex.
    assert (choice.category, choice.asset_id) == (STRAIN, 2)


def test_flex_tie_across_categories_ignores_pool_order():
    roster = _roster((MFG, 100), (STRAIN, 200))
    a = _asset(5, MFG, 50.0)
    b = _asset(5, STRAIN, 50.0)

    first = select_best_available(roster, [a, b], team_id=1)
    second = select_best_available(roster, [b, a], team_id=1)

    assert first.key == second.key == (STRAIN, 5)


def test_nothing_fits_raises():
    roster = _roster((MFG, 100), (STRAIN, 200), (MFG, 101))
    with pytest.raises(NoEligibleAssetError):
        select_best_available(roster, [_asset(1, MFG, 10.0)], team_id=1)


def test_empty_pool_raises():
    with pytest.raises(NoEligibleAssetError):
        select_best_available(_roster(), [], team_id=1)


def test_custom_ranker_is_respected():
    pool = [_asset(1, score=10.0), _asset(2, score=30.0)]
    lowest_first = lambda a: (a.latest_score, a.asset_id)  # noqa: E731
    assert select_best_available(_roster(), pool, team_id=1, ranker=lowest_first).asset_id == 1
    assert best_of([], lowest_first) is None
