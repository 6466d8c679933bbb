"""Local-first stores for poems, collections and settings."""

from .base import LocalStore, ReconcilingStore
from .collections import CollectionStore
from .poems import PoemStore
from .settings import SettingsStore

__all__ = [
    "CollectionStore",
    "LocalStore",
    "PoemStore",
    "ReconcilingStore",
    "SettingsStore",
]
