from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import PyMongoError

from keywarden.app import App
from keywarden.config import Config
from keywarden.errors import StorageError, UserError
from keywarden.web.deps import SESSION_HEADER
from keywarden.web.error_handlers import general_exception_handler, storage_error_handler, user_error_handler
from keywarden.web.openapi import set_custom_openapi
from keywarden.web.routers import (
    access_router,
    auth_router,
    groups_router,
    invites_router,
    keys_router,
    logs_router,
    policies_router,
)


def create_fastapi_app(app_instance: App, config: Config) -> FastAPI:
    """Create and configure FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
        """FastAPI application lifespan management."""
        # Store app instance and config in app state
        app.state.app = app_instance
        app.state.config = config
        async with app_instance.lifespan():
            yield

    app = FastAPI(
        title="Keywarden API",
        lifespan=lifespan,
        openapi_tags=[],  # Tags will be added by custom OpenAPI function
    )

    if config.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", "Accept", "Authorization", "User-Agent"],
            expose_headers=[SESSION_HEADER],
            max_age=86400,
        )

    # Health check endpoint (at root level, not versioned)
    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    # API v1 routes
    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(access_router, prefix="/api/v1")
    app.include_router(keys_router, prefix="/api/v1")
    app.include_router(policies_router, prefix="/api/v1")
    app.include_router(groups_router, prefix="/api/v1")
    app.include_router(invites_router, prefix="/api/v1")
    app.include_router(logs_router, prefix="/api/v1")

    # Register error handlers
    app.add_exception_handler(UserError, user_error_handler)
    app.add_exception_handler(StorageError, storage_error_handler)
    app.add_exception_handler(PyMongoError, storage_error_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    set_custom_openapi(app)

    return app
