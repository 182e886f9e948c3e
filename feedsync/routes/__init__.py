"""Register all route modules on the FastAPI app."""

from fastapi import FastAPI

from .comments import router as comments_router
from .notifications import router as notifications_router
from .posts import router as posts_router
from .streams import router as streams_router
from .users import router as users_router


def register_routes(app: FastAPI) -> None:
    """Attach all API routers to the app."""
    app.include_router(users_router, prefix="/api/users", tags=["users"])
    app.include_router(posts_router, prefix="/api/posts", tags=["posts"])
    app.include_router(comments_router, prefix="/api/posts", tags=["comments"])
    app.include_router(notifications_router, prefix="/api/notifications", tags=["notifications"])
    app.include_router(streams_router, tags=["streams"])
