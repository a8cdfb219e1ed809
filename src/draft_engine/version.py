"""Version information."""

__version__ = "0.1.0"
__author__ = "Draft Engine Team"
__email__ = "dev@draft-engine.local"
