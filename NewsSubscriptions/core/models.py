from datetime import datetime, timezone
import uuid
from typing import Optional

from pydantic import BaseModel

class Category(BaseModel):
    category_id: str
    name: str
    icon_name: Optional[str] = None
    subscribed: Optional[bool] = None

class Subscription(BaseModel):
    """A user's subscription to a category.

    ``uuid`` is the generated subscription identifier. ``id`` is the backing
    document id: the same value in the SQL store, the Mongo ``_id`` otherwise.
    """
    id: str
    user_id: str
    category_id: str
    uuid: str
    subscribed_at: datetime

    @classmethod
    def new(cls, user_id: str, category_id: str) -> "Subscription":
        subscription_id = str(uuid.uuid4())
        return cls(
            id=subscription_id,
            user_id=user_id,
            category_id=category_id,
            uuid=subscription_id,
            subscribed_at=datetime.now(timezone.utc),
        )

class SubscriptionRequest(BaseModel):
    # Optional so that a missing field maps to 400 rather than 422
    user_id: Optional[str] = None
    category_id: Optional[str] = None

class SubscribeResponse(BaseModel):
    message: str = "Subscribed successfully"
    subscriptionId: str

class MessageResponse(BaseModel):
    message: str

class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    redis: bool
