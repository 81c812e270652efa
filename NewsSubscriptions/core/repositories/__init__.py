from .base import SubscriptionStore
from .mongo import MongoSubscriptionStore
from .sql import SqlSubscriptionStore

__all__ = ["SubscriptionStore", "SqlSubscriptionStore", "MongoSubscriptionStore"]
