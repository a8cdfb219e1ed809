"""Live draft turn engine.

Coordinates turn-based drafting sessions: per-pick clocks, automatic-pick
fallback, roster slot eligibility and real-time broadcast of draft events.
"""

from .version import __version__, __author__, __email__
from .config import AppSettings, get_settings

__all__ = [
    "__version__",
    "__author__",
    "__email__",
    "AppSettings",
    "get_settings",
    # Key modules
    "models",
    "draft_state",
    "eligibility",
    "selector",
    "executor",
    "resilience",
    "timer",
    "broadcast",
    "store",
]
