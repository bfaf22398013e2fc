from fastapi import Depends, Request
from redis.asyncio import Redis

from app.config import Settings
from app.realtime.dispatcher import BroadcastDispatcher
from shared.auth.dependencies import get_current_user_required
from shared.models.user import CurrentUser


def get_settings() -> Settings:
    return Settings()


async def get_current_user(
    user: CurrentUser = Depends(get_current_user_required),
) -> CurrentUser:
    return user


def get_dispatcher(request: Request) -> BroadcastDispatcher:
    return request.app.state.dispatcher


def get_redis(request: Request) -> Redis | None:
    return getattr(request.app.state, "redis", None)
