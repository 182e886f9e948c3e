"""
feedsync - FastAPI app factory.

Use: uvicorn feedsync.app:app
Or:  from feedsync import create_app
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_config
from .errors import (
    FeedError,
    NotAuthorized,
    NotFound,
    SelfFollowRejected,
    TransportError,
    Unauthenticated,
    ValidationError,
)
from .routes import register_routes
from .state import get_state

logger = logging.getLogger(__name__)

# Most specific first; TransactionConflict resolves through TransportError.
ERROR_STATUS = (
    (ValidationError, 400),
    (SelfFollowRejected, 400),
    (Unauthenticated, 401),
    (NotAuthorized, 403),
    (NotFound, 404),
    (TransportError, 503),
)


def status_for(error: FeedError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


def create_app() -> FastAPI:
    """Build FastAPI app with CORS, routes, error mapping and startup."""
    config = get_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="feedsync API",
        description="Social feed sync engine: posts, comments, reactions, follows and live streams",
        version="1.0.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_routes(app)

    @app.exception_handler(FeedError)
    async def feed_error_handler(request: Request, exc: FeedError):
        status = status_for(exc)
        if status >= 500:
            logger.error("[app] %s %s failed: %s", request.method, request.url.path, exc)
        headers = {"WWW-Authenticate": "Bearer"} if status == 401 else None
        return JSONResponse({"detail": str(exc)}, status_code=status, headers=headers)

    @app.on_event("startup")
    async def _startup_logging():
        state = get_state()
        ok, errors = state.config.validate()
        for error in errors:
            print(f"[startup] WARNING: {error}")
        print("feedsync API starting...")
        print(f"Data source: {state.config.data_source} (store={type(state.store).__name__})")
        print(f"Feed page size: {state.config.feed_page_size}")

    @app.on_event("shutdown")
    async def _shutdown():
        get_state().close()

    @app.get("/")
    def root():
        return {"name": "feedsync", "status": "ok"}

    return app


app = create_app()
