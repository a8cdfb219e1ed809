"""Draft session, team, pick and asset models."""

from datetime import UTC, datetime
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..config import get_settings
from .enums import FLEX_SLOT, AssetCategory, DraftType


def _default_slot_counts() -> Dict[AssetCategory, int]:
    return {
        AssetCategory.MANUFACTURER: 2,
        AssetCategory.CANNABIS_STRAIN: 2,
        AssetCategory.PRODUCT: 2,
        AssetCategory.PHARMACY: 2,
        AssetCategory.BRAND: 1,
    }


class SlotConfig(BaseModel):
    """Roster layout: ordered category slot counts plus one flex slot.

    The order of ``categories`` is the order in which open slots are
    considered by the auto-pick selector.
    """

    model_config = ConfigDict(frozen=True)

    categories: Dict[AssetCategory, int] = Field(default_factory=_default_slot_counts)

    @field_validator("categories")
    @classmethod
    def validate_counts(cls, v: Dict[AssetCategory, int]) -> Dict[AssetCategory, int]:
        if not v:
            raise ValueError("at least one category slot is required")
        for category, count in v.items():
            if count < 1:
                raise ValueError(f"{category.value} must have at least one slot")
        return v

    @property
    def flex_slots(self) -> int:
        return 1

    @property
    def total_slots(self) -> int:
        return sum(self.categories.values()) + self.flex_slots

    def limit(self, category: AssetCategory) -> int:
        return self.categories.get(category, 0)

    def slot_name(self, category: AssetCategory, index: int) -> str:
        """Name of the ``index``-th (zero based) slot for a category."""
        return f"{category.slot_prefix}{index + 1}"

    def slot_names(self) -> List[str]:
        names = [
            self.slot_name(category, i)
            for category, count in self.categories.items()
            for i in range(count)
        ]
        names.append(FLEX_SLOT)
        return names

    def category_for_slot(self, slot: str) -> Optional[AssetCategory]:
        """Category bound to a slot name, ``None`` for flex."""
        for category, count in self.categories.items():
            for i in range(count):
                if self.slot_name(category, i) == slot:
                    return category
        return None


class DraftSession(BaseModel):
    """One league's live draft."""

    session_id: int
    team_ids: List[int] = Field(..., description="Teams in draft-position order")
    pick_time_limit: float = Field(
        default_factory=lambda: get_settings().PICK_TIME_LIMIT_S, gt=0, description="Seconds per pick"
    )
    draft_type: DraftType = DraftType.SNAKE
    slot_config: SlotConfig = Field(default_factory=SlotConfig)
    completed: bool = False

    @model_validator(mode="after")
    def validate_teams(self) -> "DraftSession":
        if not self.team_ids:
            raise ValueError("a draft session needs at least one team")
        if len(set(self.team_ids)) != len(self.team_ids):
            raise ValueError("team_ids must be unique")
        return self

    @property
    def team_count(self) -> int:
        return len(self.team_ids)

    @property
    def rounds(self) -> int:
        return self.slot_config.total_slots

    @property
    def total_picks(self) -> int:
        return self.team_count * self.rounds


class Team(BaseModel):
    """A drafting team; ``auto_pick_enabled`` only ratchets on mid-draft."""

    team_id: int
    session_id: int
    name: str = ""
    owner_id: Optional[int] = None
    auto_pick_enabled: bool = False

    @property
    def display_name(self) -> str:
        return self.name or f"Team {self.team_id}"


class Asset(BaseModel):
    """An entity in the eligible pool."""

    model_config = ConfigDict(frozen=True)

    asset_id: int
    category: AssetCategory
    name: str = ""
    latest_score: Optional[float] = None
    image_url: Optional[str] = None

    @property
    def key(self) -> Tuple[AssetCategory, int]:
        return (self.category, self.asset_id)


class Pick(BaseModel):
    """Immutable record of one team claiming one asset at one turn."""

    model_config = ConfigDict(frozen=True)

    session_id: int
    team_id: int
    pick_number: int = Field(..., ge=1)
    round: int = Field(..., ge=1)
    slot: str
    category: AssetCategory
    asset_id: int
    auto: bool = False
    picked_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def asset_key(self) -> Tuple[AssetCategory, int]:
        return (self.category, self.asset_id)


class NextPick(BaseModel):
    """Whose turn it is."""

    model_config = ConfigDict(frozen=True)

    pick_number: int
    round: int
    team_id: int
    pick_in_round: int
