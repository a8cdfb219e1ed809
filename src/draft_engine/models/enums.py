"""Enumerations shared across the draft engine."""

from enum import Enum
from typing import Any


class AssetCategory(str, Enum):
    """Kinds of business entity that can be drafted."""

    MANUFACTURER = "manufacturer"
    CANNABIS_STRAIN = "cannabis_strain"
    PRODUCT = "product"
    PHARMACY = "pharmacy"
    BRAND = "brand"

    @classmethod
    def _missing_(cls, value: Any) -> "AssetCategory":
        """Accept legacy spellings used by older league rows."""
        if isinstance(value, str):
            aliases = {
                "strain": cls.CANNABIS_STRAIN,
                "cannabis-strain": cls.CANNABIS_STRAIN,
                "mfg": cls.MANUFACTURER,
                "dispensary": cls.PHARMACY,
            }
            normalized = value.strip().lower()
            if normalized in aliases:
                return aliases[normalized]
            for member in cls:
                if member.value == normalized:
                    return member
        return None

    @property
    def slot_prefix(self) -> str:
        return _SLOT_PREFIXES[self]


_SLOT_PREFIXES = {
    AssetCategory.MANUFACTURER: "MFG",
    AssetCategory.CANNABIS_STRAIN: "STR",
    AssetCategory.PRODUCT: "PRD",
    AssetCategory.PHARMACY: "PHM",
    AssetCategory.BRAND: "BRD",
}

FLEX_SLOT = "FLEX"


class DraftType(str, Enum):
    """Turn rotation between rounds."""

    SNAKE = "snake"
    LINEAR = "linear"


class TimerState(str, Enum):
    """Per-session pick clock states."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    EXPIRING = "expiring"
    COMPLETE = "complete"


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # auto-pick allowed
    OPEN = "open"      # manual pick required


class RejectionReason(str, Enum):
    """Why a pick could not be recorded."""

    CAPACITY = "capacity"
    ASSET_TAKEN = "asset_taken"
    UNKNOWN_CATEGORY = "unknown_category"
    OUT_OF_TURN = "out_of_turn"


class AutoPickFailure(str, Enum):
    """Failure kinds reported by the auto-pick executor."""

    NO_ELIGIBLE_ASSET = "no_eligible_asset"
    PERSISTENCE = "persistence"
    CIRCUIT_OPEN = "circuit_open"
    STALE_TURN = "stale_turn"
    NOT_FOUND = "not_found"
    UNEXPECTED = "unexpected"


class AutoPickEnabledReason(str, Enum):
    """Reason carried by an ``auto_pick_enabled`` event: a flag change or a skipped clock."""

    TIMER_EXPIRED = "timer_expired"
    AUTO_PICK_SKIP = "auto_pick_skip"
    ERROR_DISABLED = "error_disabled"


class ErrorKind(str, Enum):
    """Kinds carried by broadcast error events."""

    AUTO_PICK_FAILED = "auto_pick_failed"
    MANUAL_PICK_REQUIRED = "manual_pick_required"
    NO_ELIGIBLE_ASSET = "no_eligible_asset"
    UNEXPECTED = "unexpected"
