from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bepit.api.routes import admin, chat, feedback
from bepit.core.config import get_settings
from bepit.core.exceptions import register_exception_handlers
from bepit.core.logging import configure_logging
from bepit.core.middleware import RequestContextMiddleware
from bepit.db.session import init_db


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    if get_settings().db_auto_create:
        init_db()
    yield


def create_app() -> FastAPI:
    """
    Application factory for the BEPIT concierge backend.
    Routes are attached in their respective modules and imported here.
    """

    configure_logging()
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        description="Regional travel concierge: partner recommendations, details and itineraries.",
        version=settings.api_version,
        lifespan=lifespan,
    )

    cors_origins = settings.resolved_cors_origins
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    register_exception_handlers(app)
    app.add_middleware(RequestContextMiddleware)

    app.include_router(chat.router)
    app.include_router(feedback.router)
    app.include_router(admin.router)

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, bool]:
        return {"ok": True}

    return app


app = create_app()
