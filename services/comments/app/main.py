import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.comments.router import router as comments_router
from app.config import Settings
from app.database import dispose_db, init_db
from app.dependencies import get_settings
from app.realtime.dispatcher import BroadcastDispatcher
from app.realtime.gateway import CommentsGateway
from app.realtime.rooms import RoomManager
from app.realtime.router import router as realtime_router
from app.realtime.sessions import SessionRegistry
from shared.auth.dependencies import get_auth_settings
from shared.database.redis_client import get_redis_client
from shared.middleware.error_handler import error_envelope_middleware
from shared.middleware.request_id import RequestIdLogFilter, request_id_middleware

_LOG_FORMAT = "%(levelname)s:%(name)s:[%(request_id)s] %(message)s"

_OPENAPI_TAGS = [
    {
        "name": "Comments",
        "description": (
            "Lesson discussion threads: top-level comments and one level of replies. "
            "Writing requires enrollment in the lesson's course (instructors and admins "
            "may reply anywhere). Deletes are soft; deleting a comment hides its replies."
        ),
    },
    {
        "name": "Realtime",
        "description": (
            "WebSocket channel `/api/v1/ws/comments?token=<jwt>`. Clients join lesson rooms "
            "and receive `comment_added`, `reply_added`, `comment_updated`, `reply_updated`, "
            "`comment_deleted` and `reply_deleted` events."
        ),
    },
    {
        "name": "Health",
        "description": "Liveness probe.",
    },
]


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=_LOG_FORMAT)
    for handler in logging.getLogger().handlers:
        handler.addFilter(RequestIdLogFilter())


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = get_settings()
    session_factory = init_db(settings.comments_database_url)
    redis_client = get_redis_client(settings.redis_url)
    app.state.redis = redis_client

    # Realtime state lives for exactly one application lifetime
    registry = SessionRegistry(get_auth_settings(), outbox_size=settings.ws_outbox_size)
    rooms = RoomManager(registry)
    dispatcher = BroadcastDispatcher(registry, rooms)
    app.state.dispatcher = dispatcher
    app.state.gateway = CommentsGateway(
        registry, rooms, dispatcher, session_factory, settings, redis=redis_client
    )

    yield

    if redis_client is not None:
        await redis_client.aclose()
    await dispose_db()


def create_app() -> FastAPI:
    settings = get_settings()
    _configure_logging(settings.log_level)
    app = FastAPI(
        title="LMS Comments Service",
        description=(
            "Lesson comments and replies for the LMS, over HTTP and a realtime "
            "WebSocket channel that fans new activity out to everyone watching a lesson."
        ),
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=_OPENAPI_TAGS,
        lifespan=lifespan,
    )

    # CORS must be registered first (runs last in middleware stack)
    # so that preflight OPTIONS requests get CORS headers before any auth check.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,
    )
    app.middleware("http")(request_id_middleware)
    app.middleware("http")(error_envelope_middleware)

    app.include_router(comments_router, prefix="/api/v1")
    app.include_router(realtime_router, prefix="/api/v1")

    @app.get("/health", tags=["Health"])
    async def health() -> dict:
        """Lightweight liveness probe. Does not hit the database."""
        return {"status": "ok", "service": "comments"}

    return app


app = create_app()
