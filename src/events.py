"""
Event Bus - In-memory pub/sub for store change notifications.

Every successful mutation of the resource store is broadcast as a
``change-event`` message carrying a JSON encoded ChangeEvent.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

CHANGE_EVENT = "change-event"


class ChangeAction(str, Enum):
    """What happened to the record."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class BusMessage:
    """A named message with a JSON payload."""

    event: str
    data: str


class ChangeEvent(BaseModel):
    """Notification that a record of some kind was created, updated or deleted."""

    model_config = ConfigDict(frozen=True)

    event: ChangeAction
    kind: Optional[str] = None
    id: Optional[str] = None

    @classmethod
    def of(cls, action: ChangeAction, kind: str, record_id: str) -> "ChangeEvent":
        return cls(event=action, kind=kind, id=record_id)

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "ChangeEvent":
        """
        Decode a change event.

        Raises:
            pydantic.ValidationError: If the payload is not a change event.
        """
        return cls.model_validate_json(data)

    def to_message(self) -> BusMessage:
        return BusMessage(event=CHANGE_EVENT, data=self.to_json())


class EventSubscription:
    """
    Async iterator for consuming messages from a subscription.

    Reads messages from a queue, applying an optional filter function.
    A ``None`` sentinel value stops iteration.
    """

    def __init__(
        self,
        queue: asyncio.Queue,
        filter_fn: Optional[Callable[[BusMessage], bool]] = None,
    ):
        self._queue = queue
        self._filter_fn = filter_fn

    def __aiter__(self) -> AsyncIterator[BusMessage]:
        return self

    async def __anext__(self) -> BusMessage:
        while True:
            message = await self._queue.get()

            if message is None:
                raise StopAsyncIteration

            if self._filter_fn is None or self._filter_fn(message):
                return message


class EventBus:
    """
    In-memory pub/sub event bus.

    Maintains an ``asyncio.Queue`` per named subscriber and publishes
    non-blocking. Full queues cause messages to be dropped to prevent
    back-pressure on publishers.
    """

    def __init__(self, queue_size: int = 256):
        self._queue_size = queue_size
        self._subscribers: Dict[str, asyncio.Queue] = {}

    def publish(self, message: BusMessage) -> None:
        """
        Publish a message to all subscribers without waiting.

        Args:
            message: The message to deliver.
        """
        for subscriber_id, queue in list(self._subscribers.items()):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                logger.warning(
                    f"Dropped {message.event} for subscriber {subscriber_id}: "
                    f"queue full"
                )

    def subscribe(
        self,
        subscriber_id: str,
        filter_fn: Optional[Callable[[BusMessage], bool]] = None,
    ) -> EventSubscription:
        """
        Subscribe under a name.

        Subscribing again with the same name replaces the earlier
        subscription, which is terminated.

        Args:
            subscriber_id: Name of the subscriber.
            filter_fn: Optional predicate applied to each message.

        Returns:
            An EventSubscription to iterate over.
        """
        self.unsubscribe(subscriber_id)
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers[subscriber_id] = queue
        logger.info(f"New event subscriber: {subscriber_id}")
        return EventSubscription(queue, filter_fn)

    def unsubscribe(self, subscriber_id: str) -> None:
        """
        Remove a subscriber.

        Sends a ``None`` sentinel so that the subscription's async
        iterator terminates.
        """
        queue = self._subscribers.pop(subscriber_id, None)

        if queue is not None:
            try:
                queue.put_nowait(None)
            except asyncio.QueueFull:
                # Drain one slot so the sentinel always gets through
                queue.get_nowait()
                queue.put_nowait(None)
            logger.info(f"Unsubscribed: {subscriber_id}")

    def subscriber_count(self) -> int:
        """Return the current number of subscribers."""
        return len(self._subscribers)
