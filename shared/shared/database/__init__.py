from shared.database.postgres import get_async_session_factory
from shared.database.redis_client import get_redis_client
from shared.database.retry import (
    StoreUnavailableError,
    is_transient_store_error,
    run_in_session,
)

__all__ = [
    "get_async_session_factory",
    "get_redis_client",
    "StoreUnavailableError",
    "is_transient_store_error",
    "run_in_session",
]
