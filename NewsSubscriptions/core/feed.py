import json
import logging
import math
from abc import ABC, abstractmethod
from typing import Dict, Optional

from redis import asyncio as redis_async
from redis.exceptions import RedisError

from . import keys

logger = logging.getLogger("news_subscriptions.feed")


def parse_score(payload: Optional[str]) -> Optional[float]:
    """Return ``score_for_user`` from a JSON cluster detail record, or None."""
    if payload is None:
        return None
    try:
        record = json.loads(payload)
    except (TypeError, ValueError):
        logger.warning("Malformed cluster detail record: %.80s", payload)
        return None
    if not isinstance(record, dict):
        return None
    raw = record.get("score_for_user")
    if raw is None or isinstance(raw, bool):
        return None
    try:
        score = float(raw)
    except (TypeError, ValueError):
        logger.warning("Non-numeric score_for_user: %r", raw)
        return None
    if not math.isfinite(score):
        # Redis rejects NaN, which would fail the whole batched ZADD
        logger.warning("Non-finite score_for_user: %r", raw)
        return None
    return score


def rank_key(score: float) -> float:
    # Ascending sort on -abs(score) gives descending relevance.
    return -abs(score)


async def category_clusters(redis: redis_async.Redis, category_id: str) -> Dict[str, Optional[float]]:
    """Map each cluster id in a category to its category-level score.

    The membership key may be a plain set (no score) or a sorted set.
    """
    key = keys.category_clusters(category_id)
    key_type = await redis.type(key)
    if isinstance(key_type, bytes):
        key_type = key_type.decode()
    if key_type == "zset":
        return {member: score for member, score in await redis.zrange(key, 0, -1, withscores=True)}
    if key_type == "set":
        return {member: None for member in await redis.smembers(key)}
    return {}


class FeedProjector(ABC):
    """Projects a category's clusters into (or out of) a user's feed."""

    def __init__(self, redis: redis_async.Redis):
        self._redis = redis

    async def update(self, user_id: str, category_id: str) -> int:
        try:
            return await self._update(user_id, category_id)
        except RedisError:
            logger.exception("Feed update failed for user=%s category=%s", user_id, category_id)
            return 0

    async def remove(self, user_id: str, category_id: str) -> int:
        try:
            return await self._remove(user_id, category_id)
        except RedisError:
            logger.exception("Feed removal failed for user=%s category=%s", user_id, category_id)
            return 0

    @abstractmethod
    async def _update(self, user_id: str, category_id: str) -> int:
        raise NotImplementedError

    @abstractmethod
    async def _remove(self, user_id: str, category_id: str) -> int:
        raise NotImplementedError


class ScoredFeedProjector(FeedProjector):
    """Maintains ``userPersonalizedFeed:sorted:<user>`` ranked by user score.

    Clusters without a detail record in the user's comprehensive feed are
    skipped. When the record carries no usable ``score_for_user`` the
    category-level score is used, or 0 if the category has none.
    """

    async def _update(self, user_id: str, category_id: str) -> int:
        clusters = await category_clusters(self._redis, category_id)
        if not clusters:
            logger.info("Category %s has no clusters; feed for %s unchanged", category_id, user_id)
            return 0

        cluster_ids = sorted(clusters)
        details = await self._redis.hmget(keys.comprehensive_feed(user_id), cluster_ids)

        mapping: Dict[str, float] = {}
        for cluster_id, payload in zip(cluster_ids, details):
            if payload is None:
                continue
            score = parse_score(payload)
            if score is None:
                score = clusters[cluster_id] or 0.0
            mapping[cluster_id] = rank_key(score)

        if mapping:
            await self._redis.zadd(keys.personalized_feed(user_id), mapping)
        logger.info(
            "Projected %d/%d clusters of category %s into feed of %s",
            len(mapping), len(cluster_ids), category_id, user_id,
        )
        return len(mapping)

    async def _remove(self, user_id: str, category_id: str) -> int:
        clusters = await category_clusters(self._redis, category_id)
        if not clusters:
            return 0
        removed = await self._redis.zrem(keys.personalized_feed(user_id), *clusters)
        logger.info("Removed %d clusters of category %s from feed of %s", removed, category_id, user_id)
        return removed


class OrderedFeedProjector(FeedProjector):
    """Unscored variant built on per-category and combined orderings.

    Overlap between categories is not reference-counted: removing a category
    drops its clusters from the combined ordering even if another subscribed
    category still contains them.
    """

    async def _update(self, user_id: str, category_id: str) -> int:
        category_key = keys.category_feed_order(user_id, category_id)
        combined_key = keys.combined_feed_order(user_id)
        count = await self._redis.zunionstore(category_key, [keys.category_clusters(category_id)])
        if count:
            await self._redis.zunionstore(combined_key, [combined_key, category_key], aggregate="MIN")
        logger.info("Ordered %d clusters of category %s for %s", count, category_id, user_id)
        return count

    async def _remove(self, user_id: str, category_id: str) -> int:
        category_key = keys.category_feed_order(user_id, category_id)
        members = await self._redis.zrange(category_key, 0, -1)
        if not members:
            return 0
        await self._redis.delete(category_key)
        removed = await self._redis.zrem(keys.combined_feed_order(user_id), *members)
        logger.info("Removed %d ordered clusters of category %s for %s", removed, category_id, user_id)
        return removed


PROJECTORS = {
    "scored": ScoredFeedProjector,
    "ordered": OrderedFeedProjector,
}


def build_projector(strategy: str, redis: redis_async.Redis) -> FeedProjector:
    try:
        projector_cls = PROJECTORS[strategy]
    except KeyError:
        raise ValueError(f"Unknown feed strategy: {strategy!r}") from None
    return projector_cls(redis)
