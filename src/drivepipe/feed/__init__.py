"""Change events and their consumers."""

from drivepipe.feed.consumer import ChangeFeedConsumer
from drivepipe.feed.events import ChangeEvent, ChangeKind

__all__ = ["ChangeEvent", "ChangeFeedConsumer", "ChangeKind"]
