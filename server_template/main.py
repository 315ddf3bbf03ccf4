from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Optional
import logging

from server_template.middlewares.error_handler import register_error_handlers
from server_template.routers import health_router
from server_template.utils.config import Settings
from server_template.utils.db import DatabaseClient

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, database: Optional[DatabaseClient] = None) -> FastAPI:
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup; teardown belongs to the shutdown coordinator
        if database is not None:
            await database.ping()
        logger.info(f"Application started ({settings.environment})")
        yield

    app = FastAPI(title="Server Template", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database

    register_error_handlers(app)

    # Credentials cannot be combined with a wildcard origin
    allow_all = "*" in settings.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=not allow_all,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router.router)

    @app.get("/")
    def read_root():
        # Exercises the global error handler
        raise RuntimeError("Root endpoint is not implemented")

    return app
