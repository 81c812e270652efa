from __future__ import annotations

from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ASCENDING, AsyncMongoClient
from pymongo.server_api import ServerApi

from ..models import Category, Subscription
from .base import SubscriptionStore

SUBSCRIPTIONS_COLLECTION = "Subscriptions"
CATEGORIES_COLLECTION = "Categories"


def _to_category(doc: Dict[str, Any]) -> Category:
    return Category(category_id=str(doc["_id"]), name=doc.get("name", ""), icon_name=doc.get("icon_name"))


def _to_subscription(doc: Dict[str, Any]) -> Subscription:
    return Subscription(
        id=str(doc["_id"]),
        user_id=doc["user_id"],
        category_id=doc["category_id"],
        uuid=doc.get("uuid") or str(doc["_id"]),
        subscribed_at=doc["subscribed_at"],
    )


class MongoSubscriptionStore(SubscriptionStore):
    def __init__(self, uri: str, db_name: str = "News", client: Optional[AsyncMongoClient] = None):
        self._client = client or AsyncMongoClient(
            uri,
            server_api=ServerApi("1", strict=True, deprecation_errors=True),
            tz_aware=True,
        )
        db = self._client[db_name]
        self._subscriptions = db[SUBSCRIPTIONS_COLLECTION]
        self._categories = db[CATEGORIES_COLLECTION]

    async def init(self) -> None:
        await self._subscriptions.create_index([("user_id", ASCENDING), ("category_id", ASCENDING)])

    async def close(self) -> None:
        await self._client.close()

    async def add_category(self, name: str, icon_name: Optional[str] = None, category_id: Optional[str] = None) -> Category:
        doc: Dict[str, Any] = {"name": name, "icon_name": icon_name}
        if category_id:
            doc["_id"] = category_id
        result = await self._categories.insert_one(doc)
        return Category(category_id=str(result.inserted_id), name=name, icon_name=icon_name)

    async def list_categories(self) -> List[Category]:
        docs = await self._categories.find({}).to_list(None)
        return [_to_category(doc) for doc in docs]

    async def has_subscription(self, user_id: str, category_id: str) -> bool:
        doc = await self._subscriptions.find_one({"user_id": user_id, "category_id": category_id})
        return doc is not None

    async def create_subscription(self, user_id: str, category_id: str) -> Subscription:
        subscription = Subscription.new(user_id, category_id)
        object_id = ObjectId()
        await self._subscriptions.insert_one(
            {
                "_id": object_id,
                "user_id": user_id,
                "category_id": category_id,
                "uuid": subscription.uuid,
                "subscribed_at": subscription.subscribed_at,
            }
        )
        return subscription.model_copy(update={"id": str(object_id)})

    async def delete_subscriptions(self, user_id: str, category_id: str) -> int:
        result = await self._subscriptions.delete_many({"user_id": user_id, "category_id": category_id})
        return result.deleted_count

    async def list_subscriptions(self, user_id: str) -> List[Subscription]:
        docs = await self._subscriptions.find({"user_id": user_id}).to_list(None)
        return [_to_subscription(doc) for doc in docs]
