"""
Change Feeds

Coarse-grained change notifications for storefront collections. A
notification only says *which* collection changed; subscribers are
expected to re-fetch rather than apply deltas.

Implementations:
- InMemoryChangeFeed: in-process fan-out
- RedisChangeFeed: Redis pub/sub, one channel per collection
"""

import asyncio
import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import structlog
from redis.asyncio import Redis
from redis.asyncio.client import PubSub

logger = structlog.get_logger(__name__)

ChangeCallback = Callable[[str], None]


@dataclass(frozen=True)
class SubscriptionHandle:
    """Opaque token returned by subscribe()"""
    subscription_id: int
    collection: str


class ChangeFeed(ABC):
    """Abstract change notification channel"""

    @abstractmethod
    async def subscribe(self, collection: str, on_change: ChangeCallback) -> SubscriptionHandle:
        """Invoke ``on_change(collection)`` on every insert/update/delete."""
        pass

    @abstractmethod
    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        pass

    @abstractmethod
    async def publish(self, collection: str) -> None:
        """Announce that a collection changed."""
        pass

    async def close(self) -> None:
        pass


class InMemoryChangeFeed(ChangeFeed):
    """
    In-process change feed.

    Callbacks run synchronously inside ``notify``; a failing callback is
    logged and does not prevent delivery to the others.
    """

    def __init__(self):
        self._ids = itertools.count(1)
        self._handlers: Dict[str, Dict[int, ChangeCallback]] = {}

    async def subscribe(self, collection: str, on_change: ChangeCallback) -> SubscriptionHandle:
        handle = SubscriptionHandle(subscription_id=next(self._ids), collection=collection)
        self._handlers.setdefault(collection, {})[handle.subscription_id] = on_change
        logger.debug("Subscribed to changes", collection=collection, subscription_id=handle.subscription_id)
        return handle

    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        handlers = self._handlers.get(handle.collection, {})
        handlers.pop(handle.subscription_id, None)
        if not handlers:
            self._handlers.pop(handle.collection, None)

    async def publish(self, collection: str) -> None:
        self.notify(collection)

    def subscriber_count(self, collection: str) -> int:
        return len(self._handlers.get(collection, {}))

    def notify(self, collection: str) -> int:
        """Deliver a change notification; returns the number of callbacks run."""
        handlers = list(self._handlers.get(collection, {}).items())
        for subscription_id, callback in handlers:
            try:
                callback(collection)
            except Exception as e:
                logger.error(
                    "Change callback failed",
                    collection=collection,
                    subscription_id=subscription_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
        return len(handlers)


class RedisChangeFeed(ChangeFeed):
    """
    Change feed over Redis pub/sub.

    Writers publish to ``<prefix>:<collection>``; a single listener task
    per feed receives messages for every subscribed channel and fans them
    out locally.

    Example:
        feed = RedisChangeFeed(get_redis(), prefix="storefront:changes")
        handle = await feed.subscribe("orders", on_change)
        await feed.publish("orders")
    """

    def __init__(self, redis: Redis, prefix: str = "storefront:changes"):
        self.redis = redis
        self.prefix = prefix
        self._local = InMemoryChangeFeed()
        self._pubsub: Optional[PubSub] = None
        self._listener: Optional[asyncio.Task] = None

    def channel(self, collection: str) -> str:
        return f"{self.prefix}:{collection}"

    def _collection_for(self, channel) -> str:
        if isinstance(channel, bytes):
            channel = channel.decode("utf-8")
        return channel[len(self.prefix) + 1:]

    async def subscribe(self, collection: str, on_change: ChangeCallback) -> SubscriptionHandle:
        if self._pubsub is None:
            self._pubsub = self.redis.pubsub()

        if self._local.subscriber_count(collection) == 0:
            await self._pubsub.subscribe(self.channel(collection))
            logger.info("Listening for changes", channel=self.channel(collection))

        handle = await self._local.subscribe(collection, on_change)

        if self._listener is None or self._listener.done():
            self._listener = asyncio.create_task(self._listen(self._pubsub))
        return handle

    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        await self._local.unsubscribe(handle)
        if self._pubsub is not None and self._local.subscriber_count(handle.collection) == 0:
            await self._pubsub.unsubscribe(self.channel(handle.collection))

    async def publish(self, collection: str) -> None:
        await self.redis.publish(self.channel(collection), "changed")

    async def _listen(self, pubsub: PubSub) -> None:
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                self._local.notify(self._collection_for(message["channel"]))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Change feed listener stopped", error=str(e), error_type=type(e).__name__)
            raise

    async def close(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning("Change feed listener exited with error", error=str(e))
            self._listener = None

        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None

        logger.info("Change feed closed", prefix=self.prefix)
