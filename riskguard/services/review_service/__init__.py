"""Review Service: moderation queue and reviewer actions."""

from .actions import ReviewActions
from .queue import QueueItem, QueuePage, ReviewQueue

__all__ = [
    "ReviewActions",
    "QueueItem",
    "QueuePage",
    "ReviewQueue",
]
