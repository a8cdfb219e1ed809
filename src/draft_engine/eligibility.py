"""Position eligibility rules: category slots fill in order, one flex overflow."""

from dataclasses import dataclass, field
from typing import Collection, Dict, Iterable, List, Optional, Tuple

from .errors import PickRejectedError
from .models import FLEX_SLOT, AssetCategory, Pick, RejectionReason, SlotConfig

AssetKey = Tuple[AssetCategory, int]


@dataclass(frozen=True)
class Eligibility:
    """Outcome of an eligibility check."""

    allowed: bool
    slot: Optional[str] = None
    reason: Optional[RejectionReason] = None
    message: str = ""

    @classmethod
    def ok(cls, slot: str) -> "Eligibility":
        return cls(allowed=True, slot=slot)

    @classmethod
    def rejected(cls, reason: RejectionReason, message: str) -> "Eligibility":
        return cls(allowed=False, reason=reason, message=message)

    def raise_for_rejection(self) -> str:
        """Return the slot, or raise ``PickRejectedError`` if not allowed."""
        if not self.allowed:
            raise PickRejectedError(self.reason, self.message)
        return self.slot


@dataclass
class RosterState:
    """A team's roster rebuilt from its picks."""

    slot_config: SlotConfig
    slots: Dict[str, Pick] = field(default_factory=dict)
    counts: Dict[AssetCategory, int] = field(default_factory=dict)

    @classmethod
    def from_picks(cls, picks: Iterable[Pick], slot_config: SlotConfig) -> "RosterState":
        """Replay picks in pick-number order through the slot algorithm."""
        roster = cls(slot_config=slot_config)
        for pick in sorted(picks, key=lambda p: p.pick_number):
            slot = roster.next_slot_for(pick.category).raise_for_rejection()
            roster.add(pick, slot)
        return roster

    @property
    def flex_open(self) -> bool:
        return FLEX_SLOT not in self.slots

    @property
    def size(self) -> int:
        return len(self.slots)

    @property
    def is_full(self) -> bool:
        return self.size >= self.slot_config.total_slots

    def count(self, category: AssetCategory) -> int:
        return self.counts.get(category, 0)

    def open_category_slots(self) -> List[Tuple[str, AssetCategory]]:
        """Unfilled category slots in configured order."""
        open_slots = []
        for category, limit in self.slot_config.categories.items():
            for i in range(self.count(category), limit):
                open_slots.append((self.slot_config.slot_name(category, i), category))
        return open_slots

    def next_slot_for(self, category: AssetCategory) -> Eligibility:
        """Where the next asset of ``category`` would land."""
        limit = self.slot_config.limit(category)
        if limit == 0:
            return Eligibility.rejected(
                RejectionReason.UNKNOWN_CATEGORY,
                f"{category.value} has no slots in this league",
            )
        filled = self.count(category)
        if filled < limit:
            return Eligibility.ok(self.slot_config.slot_name(category, filled))
        if self.flex_open:
            return Eligibility.ok(FLEX_SLOT)
        return Eligibility.rejected(
            RejectionReason.CAPACITY,
            f"{category.value} slots and FLEX are already filled",
        )

    def add(self, pick: Pick, slot: str) -> None:
        self.slots[slot] = pick
        self.counts[pick.category] = self.count(pick.category) + 1

    def fits_flex(self, category: AssetCategory) -> bool:
        """Whether an asset of ``category`` would be diverted to flex."""
        return (
            self.flex_open
            and self.slot_config.limit(category) > 0
            and self.count(category) >= self.slot_config.limit(category)
        )


def taken_keys(picks: Iterable[Pick]) -> set:
    """Asset keys already drafted by any team in the session."""
    return {pick.asset_key for pick in picks}


def assign_slot(
    roster_picks: Iterable[Pick],
    category: AssetCategory,
    slot_config: SlotConfig,
) -> str:
    """Slot the next ``category`` pick takes; raises ``PickRejectedError``."""
    roster = RosterState.from_picks(roster_picks, slot_config)
    return roster.next_slot_for(category).raise_for_rejection()


def can_assign_slot(
    roster_picks: Iterable[Pick],
    category: AssetCategory,
    asset_id: int,
    taken: Collection[AssetKey],
    slot_config: SlotConfig,
) -> Eligibility:
    """Check whether an asset may join a roster and which slot it takes.

    Args:
        roster_picks: The team's picks so far
        category: Category of the candidate asset
        asset_id: Candidate asset id
        taken: Asset keys drafted by any team in the session
        slot_config: League roster layout

    Returns:
        Eligibility with the slot on success or a rejection reason
    """
    if (category, asset_id) in taken:
        return Eligibility.rejected(
            RejectionReason.ASSET_TAKEN,
            f"{category.value} {asset_id} has already been drafted",
        )
    roster = RosterState.from_picks(roster_picks, slot_config)
    return roster.next_slot_for(category)
