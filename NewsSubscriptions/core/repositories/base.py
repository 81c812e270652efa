from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from ..models import Category, Subscription


class SubscriptionStore(ABC):
    """
    Document store for categories and subscriptions; backed by SQL or MongoDB.
    """

    async def init(self) -> None:
        """Prepare the backing store (create tables, indexes)."""

    async def close(self) -> None:
        """Release connections held by the store."""

    @abstractmethod
    async def add_category(self, name: str, icon_name: Optional[str] = None, category_id: Optional[str] = None) -> Category:
        raise NotImplementedError

    @abstractmethod
    async def list_categories(self) -> List[Category]:
        raise NotImplementedError

    @abstractmethod
    async def has_subscription(self, user_id: str, category_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def create_subscription(self, user_id: str, category_id: str) -> Subscription:
        raise NotImplementedError

    @abstractmethod
    async def delete_subscriptions(self, user_id: str, category_id: str) -> int:
        """Delete every subscription matching the pair; return how many went."""
        raise NotImplementedError

    @abstractmethod
    async def list_subscriptions(self, user_id: str) -> List[Subscription]:
        raise NotImplementedError
