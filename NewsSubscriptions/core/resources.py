import logging
from dataclasses import dataclass

from redis import asyncio as redis_async

from .config import Settings
from .feed import FeedProjector, build_projector
from .repositories import MongoSubscriptionStore, SqlSubscriptionStore, SubscriptionStore

logger = logging.getLogger("news_subscriptions")


@dataclass
class Resources:
    """Process-wide store handles, opened at startup and closed at shutdown."""

    redis: redis_async.Redis
    store: SubscriptionStore
    projector: FeedProjector

    async def close(self) -> None:
        await self.store.close()
        await self.redis.aclose()


def build_store(settings: Settings) -> SubscriptionStore:
    if settings.DOCUMENT_STORE == "mongo":
        return MongoSubscriptionStore(settings.MONGO_URI, settings.MONGO_DB_NAME)
    if settings.DOCUMENT_STORE == "sql":
        return SqlSubscriptionStore(settings.DB_URL)
    raise ValueError(f"Unknown document store: {settings.DOCUMENT_STORE!r}")


async def open_resources(settings: Settings) -> Resources:
    redis = redis_async.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
    store = build_store(settings)
    await store.init()
    logger.info(
        "Opened %s document store and Redis at %s:%s (feed strategy: %s)",
        settings.DOCUMENT_STORE, settings.REDIS_HOST, settings.REDIS_PORT, settings.FEED_STRATEGY,
    )
    return Resources(redis=redis, store=store, projector=build_projector(settings.FEED_STRATEGY, redis))
