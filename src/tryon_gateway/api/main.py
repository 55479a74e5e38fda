"""FastAPI application factory and main entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tryon_gateway import __version__
from tryon_gateway.api.middleware.exception_handler import setup_exception_handlers
from tryon_gateway.api.middleware.logging import LoggingMiddleware
from tryon_gateway.api.middleware.metrics import MetricsMiddleware
from tryon_gateway.api.middleware.response_hooks import ResponseHooksMiddleware
from tryon_gateway.api.routes import account, admin, api_keys, health, try_on
from tryon_gateway.core.config import get_settings
from tryon_gateway.core.logging import configure_logging, get_logger
from tryon_gateway.core.redis import close_redis
from tryon_gateway.upstream.gemini import close_image_client

settings = get_settings()

configure_logging(
    json_logs=settings.is_production,
    log_level="DEBUG" if settings.debug else "INFO",
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    logger.info("application_startup", app_name=settings.app_name, env=settings.app_env)
    yield
    logger.info("application_shutdown")
    await close_image_client()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        description="Quota-gated virtual try-on API backed by a rotating provider key pool",
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )

    # Innermost, so it sees the status the exception handlers produce
    app.add_middleware(ResponseHooksMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.add_middleware(MetricsMiddleware)
    app.add_middleware(LoggingMiddleware)

    setup_exception_handlers(app)

    app.include_router(health.router, tags=["Health"])
    app.include_router(
        try_on.router,
        prefix=settings.product_prefix,
        tags=["Product"],
    )
    app.include_router(api_keys.router, prefix=settings.api_v1_prefix)
    app.include_router(account.router, prefix=settings.api_v1_prefix)
    app.include_router(admin.router, prefix=settings.api_v1_prefix)

    return app


app = create_app()
