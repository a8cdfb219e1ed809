"""Data models for the draft engine."""

from .draft import Asset, DraftSession, NextPick, Pick, SlotConfig, Team
from .enums import (
    FLEX_SLOT,
    AssetCategory,
    AutoPickEnabledReason,
    AutoPickFailure,
    CircuitState,
    DraftType,
    ErrorKind,
    RejectionReason,
    TimerState,
)

__all__ = [
    "Asset",
    "DraftSession",
    "NextPick",
    "Pick",
    "SlotConfig",
    "Team",
    "FLEX_SLOT",
    "AssetCategory",
    "AutoPickEnabledReason",
    "AutoPickFailure",
    "CircuitState",
    "DraftType",
    "ErrorKind",
    "RejectionReason",
    "TimerState",
]
