"""Realtime notification of progress store changes."""

from dreamcut.realtime.base import (
    ChangeEvent,
    Notifier,
    Subscription,
    channel_for,
    channel_names,
)
from dreamcut.realtime.memory import InMemoryNotifier

__all__ = [
    "ChangeEvent",
    "InMemoryNotifier",
    "Notifier",
    "Subscription",
    "channel_for",
    "channel_names",
]
