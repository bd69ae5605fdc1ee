"""In-process event bus used in place of a Kafka cluster.

Each application owns one :class:`InMemoryBroker`; producers and consumers are
bound to it explicitly so separate apps in one process never see each other's
events.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

_LOGGER = logging.getLogger(__name__)

Message = dict[str, Any]
TopicHandler = Callable[[str, Message], Awaitable[None]]


@dataclass(frozen=True, slots=True, eq=False)
class Subscription:
    topic: str
    handler: TopicHandler


class InMemoryBroker:
    """Delivers each published message to the current subscribers of its topic, in order."""

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    def subscribe(self, topic: str, handler: TopicHandler) -> Subscription:
        subscription = Subscription(topic=topic, handler=handler)
        self._subscriptions.append(subscription)
        return subscription

    def cancel(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def subscriber_count(self, topic: str) -> int:
        return sum(1 for subscription in self._subscriptions if subscription.topic == topic)

    async def publish(self, topic: str, message: Message) -> int:
        targets = [subscription for subscription in self._subscriptions if subscription.topic == topic]
        if not targets:
            _LOGGER.debug("No subscribers for topic %s", topic)
        for subscription in targets:
            await subscription.handler(topic, message)
        return len(targets)


class EventProducer:
    """Kafka-style producer facade over a broker."""

    def __init__(self, broker: InMemoryBroker) -> None:
        self._broker = broker
        self._open = False

    async def connect(self) -> None:
        self._open = True

    async def send(self, topic: str, value: Message) -> None:
        if not self._open:
            raise RuntimeError(f"Producer is closed; cannot send to {topic}")
        await self._broker.publish(topic, value)

    async def close(self) -> None:
        self._open = False


class EventConsumer:
    """Feeds every message on ``topics`` into ``handler(topic, message)`` while started."""

    def __init__(self, broker: InMemoryBroker, topics: Sequence[str], handler: TopicHandler) -> None:
        self._broker = broker
        self._topics = tuple(topics)
        self._handler = handler
        self._subscriptions: list[Subscription] = []

    @property
    def started(self) -> bool:
        return bool(self._subscriptions)

    async def start(self) -> None:
        if self.started:
            return
        self._subscriptions = [self._broker.subscribe(topic, self._handler) for topic in self._topics]

    async def stop(self) -> None:
        for subscription in self._subscriptions:
            self._broker.cancel(subscription)
        self._subscriptions = []
