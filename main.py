"""FastAPI application for the music search service."""

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request

from config.settings import Settings, get_settings
from core.dependencies import close_record_store, flush_posthog, shutdown_posthog
from core.logging import setup_logging
from core.sentry import init_sentry
from routers.health import router as health_router
from search.router import router as search_router

logger = logging.getLogger(__name__)


def configure_observability(settings: Settings) -> None:
    """Set up logging and Sentry before the app starts serving."""
    setup_logging(level=settings.log_level, log_file=settings.log_file)
    init_sentry(
        dsn=settings.sentry_dsn,
        environment="development" if settings.debug else settings.environment,
        release=settings.app_version,
        backend=settings.record_store_backend,
        traces_sample_rate=settings.sentry_traces_sample_rate,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info(
        f"{settings.app_name} v{settings.app_version} starting "
        f"(record store: {settings.record_store_backend})"
    )
    try:
        yield
    finally:
        shutdown_posthog()
        await close_record_store()
        logger.info("Shutdown complete")


def create_app(settings: Settings) -> FastAPI:
    application = FastAPI(
        title=settings.app_name,
        description="Song and album search with per-user search history",
        version=settings.app_version,
        lifespan=lifespan,
    )

    @application.middleware("http")
    async def posthog_flush_middleware(request: Request, call_next):
        """Flush buffered PostHog events once each request is handled."""
        try:
            return await call_next(request)
        finally:
            flush_posthog()

    application.include_router(health_router)
    application.include_router(search_router, prefix="/api/v1")
    return application


load_dotenv()
configure_observability(get_settings())
app = create_app(get_settings())


def run() -> None:
    """Serve the app with uvicorn (the ``music-search-service`` command)."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
