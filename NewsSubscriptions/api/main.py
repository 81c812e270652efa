import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from NewsSubscriptions.api.dependencies import Projector, Store, get_resources
from NewsSubscriptions.core.config import get_settings
from NewsSubscriptions.core.logging import configure_logging
from NewsSubscriptions.core.models import (
    Category,
    HealthResponse,
    MessageResponse,
    SubscribeResponse,
    SubscriptionRequest,
)
from NewsSubscriptions.core.resources import Resources, open_resources

configure_logging()
logger = logging.getLogger("news_subscriptions")
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.resources = await open_resources(settings)
    try:
        yield
    finally:
        await app.state.resources.close()


app = FastAPI(title=settings.APP_NAME, version=settings.VERSION, lifespan=lifespan)


def _require_pair(body: SubscriptionRequest) -> None:
    if not body.user_id or not body.category_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing user_id or category_id")


@app.get("/health", response_model=HealthResponse)
async def health(resources: Resources = Depends(get_resources)) -> HealthResponse:
    try:
        redis_ok = bool(await resources.redis.ping())
    except RedisError as exc:
        logger.warning("Redis unavailable: %s", exc)
        redis_ok = False
    return HealthResponse(
        status="ok" if redis_ok else "degraded",
        service=settings.APP_NAME,
        version=settings.VERSION,
        redis=redis_ok,
    )


@app.get("/test")
async def test_endpoint() -> dict:
    return {"message": "This is a test endpoint."}


@app.get("/categories", response_model=List[Category], response_model_exclude_none=True)
async def list_categories(store: Store, user_id: Optional[str] = Query(default=None)) -> List[Category]:
    categories = await store.list_categories()
    if user_id:
        for category in categories:
            category.subscribed = await store.has_subscription(user_id, category.category_id)
    return categories


@app.post("/subscribe", response_model=SubscribeResponse)
async def subscribe(
    body: SubscriptionRequest,
    store: Store,
    projector: Projector,
    background_tasks: BackgroundTasks,
) -> SubscribeResponse:
    _require_pair(body)
    subscription = await store.create_subscription(body.user_id, body.category_id)
    logger.info("User %s subscribed to %s (%s)", body.user_id, body.category_id, subscription.uuid)

    # Feed projection is best-effort once the subscription is stored.
    background_tasks.add_task(projector.update, body.user_id, body.category_id)
    return SubscribeResponse(subscriptionId=subscription.uuid)


@app.post("/unsubscribe", response_model=MessageResponse)
async def unsubscribe(
    body: SubscriptionRequest,
    store: Store,
    projector: Projector,
    background_tasks: BackgroundTasks,
) -> MessageResponse:
    _require_pair(body)
    deleted = await store.delete_subscriptions(body.user_id, body.category_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription not found")
    logger.info("User %s unsubscribed from %s (%d records)", body.user_id, body.category_id, deleted)

    background_tasks.add_task(projector.remove, body.user_id, body.category_id)
    return MessageResponse(message="Unsubscribed successfully")


@app.get("/news-subscriptions")
async def list_subscriptions(
    store: Store,
    user_id: Optional[str] = Query(default=None),
    fields: Optional[str] = Query(default=None),
) -> list:
    if not user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing user_id")

    subscriptions = await store.list_subscriptions(user_id)
    if fields == "category_ids":
        return [subscription.category_id for subscription in subscriptions]
    return [subscription.model_dump(mode="json") for subscription in subscriptions]


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request, exc):
    logger.error("Unhandled error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )
