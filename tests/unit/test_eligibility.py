"""Unit tests for roster slot assignment."""

import itertools
import random

import pytest

from draft_engine.eligibility import RosterState, assign_slot, can_assign_slot, taken_keys
from draft_engine.errors import PickRejectedError
from draft_engine.models import FLEX_SLOT, AssetCategory, Pick, RejectionReason, SlotConfig

MFG = AssetCategory.MANUFACTURER
STRAIN = AssetCategory.CANNABIS_STRAIN
BRAND = AssetCategory.BRAND

CAT_A_ONLY = SlotConfig(categories={MFG: 2})
MIXED = SlotConfig(categories={MFG: 2, STRAIN: 1})


def _pick(n, category, asset_id, slot="?", team_id=1):
    return Pick(session_id=1, team_id=team_id, pick_number=n, round=n, slot=slot,
                category=category, asset_id=asset_id)


class TestSlotFilling:

    def test_category_slots_fill_in_order(self):
        assert assign_slot([], MFG, CAT_A_ONLY) == "MFG1"
        assert assign_slot([_pick(1, MFG, 1)], MFG, CAT_A_ONLY) == "MFG2"

    def test_overflow_lands_in_flex_then_capacity(self):
        """Both MFG slots full and flex empty: next MFG goes to flex, the one after is rejected."""
        roster = [_pick(1, MFG, 1), _pick(2, MFG, 2)]
        assert assign_slot(roster, MFG, CAT_A_ONLY) == FLEX_SLOT

        roster.append(_pick(3, MFG, 3))
        result = can_assign_slot(roster, MFG, 4, taken_keys(roster), CAT_A_ONLY)
        assert not result.allowed
        assert result.reason == RejectionReason.CAPACITY

        with pytest.raises(PickRejectedError) as exc_info:
            assign_slot(roster, MFG, CAT_A_ONLY)
        assert exc_info.value.reason == RejectionReason.CAPACITY

    def test_flex_taken_by_other_category_blocks_overflow(self):
        roster = [_pick(1, STRAIN, 1), _pick(2, STRAIN, 2), _pick(3, MFG, 3), _pick(4, MFG, 4)]
        rebuilt = RosterState.from_picks(roster, MIXED)
        assert rebuilt.slots[FLEX_SLOT].category == STRAIN
        assert can_assign_slot(roster, MFG, 9, set(), MIXED).reason == RejectionReason.CAPACITY

    def test_category_without_slots_is_rejected(self):
        result = can_assign_slot([], BRAND, 1, set(), CAT_A_ONLY)
        assert result.reason == RejectionReason.UNKNOWN_CATEGORY

    def test_taken_asset_is_rejected_before_slot_check(self):
        result = can_assign_slot([], MFG, 5, {(MFG, 5)}, CAT_A_ONLY)
        assert result.reason == RejectionReason.ASSET_TAKEN
        # Same id in another category is a different asset.
        assert can_assign_slot([], STRAIN, 5, {(MFG, 5)}, MIXED).allowed

    def test_open_category_slots_follow_config_order(self):
        roster = RosterState.from_picks([_pick(1, MFG, 1)], MIXED)
        assert roster.open_category_slots() == [("MFG2", MFG), ("STR1", STRAIN)]
        assert roster.flex_open
        assert not roster.fits_flex(MFG)


class TestSlotInvariant:

    @pytest.mark.parametrize("seed", range(20))
    def test_random_pick_orders_never_overfill(self, seed):
        rng = random.Random(seed)
        config = SlotConfig(categories={MFG: 2, STRAIN: 2, BRAND: 1})
        roster = RosterState(slot_config=config)
        ids = itertools.count(1)
        for n in range(1, 30):
            category = rng.choice([MFG, STRAIN, BRAND])
            decision = roster.next_slot_for(category)
            if decision.allowed:
                roster.add(_pick(n, category, next(ids)), decision.slot)

            for cat, limit in config.categories.items():
                in_category_slots = sum(
                    1 for slot, p in roster.slots.items() if slot != FLEX_SLOT and p.category == cat
                )
                assert in_category_slots <= limit
            assert list(roster.slots).count(FLEX_SLOT) <= 1
            assert roster.size <= config.total_slots
