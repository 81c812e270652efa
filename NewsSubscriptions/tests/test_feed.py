import asyncio
import json
import logging
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import RedisError

from NewsSubscriptions.core import keys
from NewsSubscriptions.core.feed import (
    OrderedFeedProjector,
    ScoredFeedProjector,
    build_projector,
    parse_score,
)


def _seed_details(redis_sync, user_id, scores):
    redis_sync.hset(
        keys.comprehensive_feed(user_id),
        mapping={cluster_id: json.dumps({"score_for_user": score}) for cluster_id, score in scores.items()},
    )


@pytest.mark.parametrize(
    "payload, expected",
    [
        ('{"score_for_user": 0.75}', 0.75),
        ('{"score_for_user": "-3"}', -3.0),
        ('{"score_for_user": null}', None),
        ('{"title": "no score"}', None),
        ('{"score_for_user": "high"}', None),
        ("not json", None),
        ("[1, 2]", None),
        ('{"score_for_user": NaN}', None),
        ('{"score_for_user": "nan"}', None),
        ('{"score_for_user": -Infinity}', None),
        (None, None),
    ],
)
def test_parse_score(payload, expected):
    assert parse_score(payload) == expected


def test_keys_are_stable():
    assert keys.personalized_feed("u1") == "userPersonalizedFeed:sorted:u1"
    assert keys.comprehensive_feed("u1") == "userComprehensiveFeed:hash:u1"
    assert keys.category_clusters("world") == "clusteredNewsSectionCategoryClusterForCategory:world"
    assert keys.category_feed_order("u1", "world") == "user:u1:category:world:newsfeed:order"
    assert keys.combined_feed_order("u1") == "user:u1:combinedFeed:order"


# ── ScoredFeedProjector.update ───────────────────────────────────────────────

async def test_update_ranks_by_negative_absolute_score(redis_sync, redis_async):
    redis_sync.sadd(keys.category_clusters("world"), "c1", "c2", "c3")
    _seed_details(redis_sync, "u1", {"c1": 0.9, "c2": -2.5})

    written = await ScoredFeedProjector(redis_async).update("u1", "world")

    assert written == 2
    feed_key = keys.personalized_feed("u1")
    assert redis_sync.zscore(feed_key, "c1") == pytest.approx(-0.9)
    assert redis_sync.zscore(feed_key, "c2") == pytest.approx(-2.5)
    # no detail record, no feed entry
    assert redis_sync.zscore(feed_key, "c3") is None
    assert redis_sync.zrange(feed_key, 0, -1) == ["c2", "c1"]


async def test_update_missing_score_falls_back_to_zero_for_plain_set(redis_sync, redis_async):
    redis_sync.sadd(keys.category_clusters("world"), "c1")
    redis_sync.hset(keys.comprehensive_feed("u1"), "c1", json.dumps({"headline": "x"}))

    await ScoredFeedProjector(redis_async).update("u1", "world")

    assert redis_sync.zscore(keys.personalized_feed("u1"), "c1") == 0.0


async def test_update_missing_score_falls_back_to_category_score(redis_sync, redis_async):
    redis_sync.zadd(keys.category_clusters("sports"), {"c1": 4.0, "c2": 1.5})
    redis_sync.hset(keys.comprehensive_feed("u1"), "c1", json.dumps({"score_for_user": None}))
    redis_sync.hset(keys.comprehensive_feed("u1"), "c2", "{broken")

    await ScoredFeedProjector(redis_async).update("u1", "sports")

    feed_key = keys.personalized_feed("u1")
    assert redis_sync.zscore(feed_key, "c1") == pytest.approx(-4.0)
    assert redis_sync.zscore(feed_key, "c2") == pytest.approx(-1.5)


async def test_update_prefers_user_score_over_category_score(redis_sync, redis_async):
    redis_sync.zadd(keys.category_clusters("sports"), {"c1": 4.0})
    _seed_details(redis_sync, "u1", {"c1": 0.2})

    await ScoredFeedProjector(redis_async).update("u1", "sports")

    assert redis_sync.zscore(keys.personalized_feed("u1"), "c1") == pytest.approx(-0.2)


async def test_update_only_touches_target_user(redis_sync, redis_async):
    redis_sync.sadd(keys.category_clusters("world"), "c1")
    _seed_details(redis_sync, "u1", {"c1": 1.0})
    _seed_details(redis_sync, "u2", {"c1": 3.0})
    redis_sync.zadd(keys.personalized_feed("u2"), {"other": -7.0})

    await ScoredFeedProjector(redis_async).update("u1", "world")

    assert redis_sync.zrange(keys.personalized_feed("u2"), 0, -1, withscores=True) == [("other", -7.0)]
    assert redis_sync.sismember(keys.category_clusters("world"), "c1")


async def test_update_with_unknown_category_is_noop(redis_sync, redis_async):
    written = await ScoredFeedProjector(redis_async).update("u1", "missing")

    assert written == 0
    assert not redis_sync.exists(keys.personalized_feed("u1"))


async def test_repeated_update_is_idempotent(redis_sync, redis_async):
    redis_sync.sadd(keys.category_clusters("world"), "c1", "c2")
    _seed_details(redis_sync, "u1", {"c1": 0.5, "c2": 0.7})
    projector = ScoredFeedProjector(redis_async)

    await projector.update("u1", "world")
    first = redis_sync.zrange(keys.personalized_feed("u1"), 0, -1, withscores=True)
    await projector.update("u1", "world")

    assert redis_sync.zrange(keys.personalized_feed("u1"), 0, -1, withscores=True) == first


async def test_update_non_finite_score_falls_back_without_dropping_siblings(redis_sync, redis_async):
    redis_sync.sadd(keys.category_clusters("world"), "good", "bad")
    redis_sync.hset(
        keys.comprehensive_feed("u1"),
        mapping={"good": json.dumps({"score_for_user": 0.5}), "bad": '{"score_for_user": NaN}'},
    )

    written = await ScoredFeedProjector(redis_async).update("u1", "world")

    assert written == 2
    feed_key = keys.personalized_feed("u1")
    assert redis_sync.zscore(feed_key, "good") == pytest.approx(-0.5)
    assert redis_sync.zscore(feed_key, "bad") == 0.0


async def test_concurrent_updates_converge_to_same_feed(redis_sync, redis_async):
    redis_sync.sadd(keys.category_clusters("world"), "c1", "c2", "c3")
    _seed_details(redis_sync, "u1", {"c1": 0.5, "c2": -0.7, "c3": 2.0})
    projector = ScoredFeedProjector(redis_async)

    await projector.update("u1", "world")
    expected = redis_sync.zrange(keys.personalized_feed("u1"), 0, -1, withscores=True)
    redis_sync.delete(keys.personalized_feed("u1"))

    results = await asyncio.gather(projector.update("u1", "world"), projector.update("u1", "world"))

    assert results == [3, 3]
    assert redis_sync.zrange(keys.personalized_feed("u1"), 0, -1, withscores=True) == expected


# ── ScoredFeedProjector.remove ───────────────────────────────────────────────

async def test_remove_drops_category_clusters_only(redis_sync, redis_async):
    redis_sync.sadd(keys.category_clusters("world"), "c1", "c2")
    redis_sync.zadd(keys.personalized_feed("u1"), {"c1": -1.0, "c2": -2.0, "c9": -3.0})
    projector = ScoredFeedProjector(redis_async)

    assert await projector.remove("u1", "world") == 2
    assert redis_sync.zrange(keys.personalized_feed("u1"), 0, -1) == ["c9"]
    # second removal is a no-op
    assert await projector.remove("u1", "world") == 0
    assert redis_sync.zrange(keys.personalized_feed("u1"), 0, -1) == ["c9"]


async def test_remove_with_empty_category_is_noop(redis_sync, redis_async):
    redis_sync.zadd(keys.personalized_feed("u1"), {"c1": -1.0})

    assert await ScoredFeedProjector(redis_async).remove("u1", "empty") == 0
    assert redis_sync.zcard(keys.personalized_feed("u1")) == 1


# ── error policy ─────────────────────────────────────────────────────────────

async def test_redis_errors_are_logged_not_raised(caplog):
    redis = AsyncMock()
    redis.type.side_effect = RedisError("connection reset")
    projector = ScoredFeedProjector(redis)

    with caplog.at_level(logging.ERROR, logger="news_subscriptions.feed"):
        assert await projector.update("u1", "world") == 0
        assert await projector.remove("u1", "world") == 0

    assert "Feed update failed" in caplog.text
    assert "Feed removal failed" in caplog.text
    redis.zadd.assert_not_called()
    redis.zrem.assert_not_called()


# ── OrderedFeedProjector ─────────────────────────────────────────────────────

async def test_ordered_projector_merges_and_removes(redis_sync, redis_async):
    redis_sync.zadd(keys.category_clusters("world"), {"c1": 1.0, "c2": 3.0})
    redis_sync.zadd(keys.category_clusters("sports"), {"c2": 0.5, "c3": 2.0})
    projector = OrderedFeedProjector(redis_async)

    assert await projector.update("u1", "world") == 2
    assert await projector.update("u1", "sports") == 2

    combined = keys.combined_feed_order("u1")
    assert redis_sync.zrange(combined, 0, -1, withscores=True) == [("c2", 0.5), ("c1", 1.0), ("c3", 2.0)]
    assert redis_sync.zrange(keys.category_feed_order("u1", "world"), 0, -1) == ["c1", "c2"]

    assert await projector.remove("u1", "world") == 2
    assert not redis_sync.exists(keys.category_feed_order("u1", "world"))
    # c2 is shared with sports but overlap is not reference-counted
    assert redis_sync.zrange(combined, 0, -1) == ["c3"]
    assert await projector.remove("u1", "world") == 0


def test_build_projector(redis_async):
    assert isinstance(build_projector("scored", redis_async), ScoredFeedProjector)
    assert isinstance(build_projector("ordered", redis_async), OrderedFeedProjector)
    with pytest.raises(ValueError, match="Unknown feed strategy"):
        build_projector("random", redis_async)
