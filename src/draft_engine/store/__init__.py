"""Draft persistence backends."""

from .base import AssetPool, DraftStore, authorize_pick
from .memory import InMemoryDraftStore
from .sql import SqlDraftStore, metadata

__all__ = [
    "AssetPool",
    "DraftStore",
    "InMemoryDraftStore",
    "SqlDraftStore",
    "authorize_pick",
    "metadata",
]
