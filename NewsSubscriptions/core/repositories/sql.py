from __future__ import annotations

import uuid
from typing import List, Optional

from sqlalchemy import Column, DateTime, String, delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from ..models import Category, Subscription
from .base import SubscriptionStore

Base = declarative_base()


class CategoryModel(Base):
    __tablename__ = "news_categories"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    icon_name = Column(String)


class SubscriptionModel(Base):
    __tablename__ = "news_subscriptions"

    id = Column(String, primary_key=True)
    user_id = Column(String, index=True, nullable=False)
    category_id = Column(String, index=True, nullable=False)
    subscribed_at = Column(DateTime(timezone=True))


def _to_subscription(row: SubscriptionModel) -> Subscription:
    return Subscription(
        id=row.id,
        user_id=row.user_id,
        category_id=row.category_id,
        uuid=row.id,
        subscribed_at=row.subscribed_at,
    )


class SqlSubscriptionStore(SubscriptionStore):
    def __init__(self, db_url: str):
        engine_kwargs = {}
        if db_url.startswith("sqlite") and ":memory:" in db_url:
            # one shared connection, otherwise every session sees an empty db
            engine_kwargs = {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
        self._engine = create_async_engine(db_url, echo=False, **engine_kwargs)
        self._session_factory = async_sessionmaker(self._engine, class_=AsyncSession, expire_on_commit=False)

    async def init(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        await self._engine.dispose()

    async def add_category(self, name: str, icon_name: Optional[str] = None, category_id: Optional[str] = None) -> Category:
        row = CategoryModel(id=category_id or str(uuid.uuid4()), name=name, icon_name=icon_name)
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
        return Category(category_id=row.id, name=row.name, icon_name=row.icon_name)

    async def list_categories(self) -> List[Category]:
        async with self._session_factory() as session:
            result = await session.execute(select(CategoryModel).order_by(CategoryModel.name))
            return [
                Category(category_id=row.id, name=row.name, icon_name=row.icon_name)
                for row in result.scalars().all()
            ]

    async def has_subscription(self, user_id: str, category_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(SubscriptionModel.id)
                .filter(SubscriptionModel.user_id == user_id, SubscriptionModel.category_id == category_id)
                .limit(1)
            )
            return result.first() is not None

    async def create_subscription(self, user_id: str, category_id: str) -> Subscription:
        subscription = Subscription.new(user_id, category_id)
        async with self._session_factory() as session:
            session.add(
                SubscriptionModel(
                    id=subscription.id,
                    user_id=user_id,
                    category_id=category_id,
                    subscribed_at=subscription.subscribed_at,
                )
            )
            await session.commit()
        return subscription

    async def delete_subscriptions(self, user_id: str, category_id: str) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(SubscriptionModel).where(
                    SubscriptionModel.user_id == user_id,
                    SubscriptionModel.category_id == category_id,
                )
            )
            await session.commit()
            return result.rowcount or 0

    async def list_subscriptions(self, user_id: str) -> List[Subscription]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(SubscriptionModel)
                .filter(SubscriptionModel.user_id == user_id)
                .order_by(SubscriptionModel.subscribed_at)
            )
            return [_to_subscription(row) for row in result.scalars().all()]
