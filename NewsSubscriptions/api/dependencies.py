from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from NewsSubscriptions.core.feed import FeedProjector
from NewsSubscriptions.core.repositories import SubscriptionStore
from NewsSubscriptions.core.resources import Resources


def get_resources(request: Request) -> Resources:
    return request.app.state.resources


def get_store(resources: Resources = Depends(get_resources)) -> SubscriptionStore:
    return resources.store


def get_projector(resources: Resources = Depends(get_resources)) -> FeedProjector:
    return resources.projector


Store = Annotated[SubscriptionStore, Depends(get_store)]
Projector = Annotated[FeedProjector, Depends(get_projector)]
