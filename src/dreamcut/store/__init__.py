"""Progress store backends."""

from dreamcut.store.base import ProgressStore
from dreamcut.store.memory import InMemoryProgressStore

__all__ = ["InMemoryProgressStore", "ProgressStore"]
