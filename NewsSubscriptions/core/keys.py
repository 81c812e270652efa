"""Redis key names shared with the other services that read the feed data.

These strings are part of the wire contract and must not change.
"""


def personalized_feed(user_id: str) -> str:
    return f"userPersonalizedFeed:sorted:{user_id}"


def comprehensive_feed(user_id: str) -> str:
    return f"userComprehensiveFeed:hash:{user_id}"


def category_clusters(category_id: str) -> str:
    return f"clusteredNewsSectionCategoryClusterForCategory:{category_id}"


def category_feed_order(user_id: str, category_id: str) -> str:
    return f"user:{user_id}:category:{category_id}:newsfeed:order"


def combined_feed_order(user_id: str) -> str:
    return f"user:{user_id}:combinedFeed:order"
