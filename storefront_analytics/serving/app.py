"""
FastAPI Application

Serves analytics report snapshots to dashboard clients.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from prometheus_client import make_asgi_app

from storefront_analytics.analytics import DataSource, RedisChangeFeed
from storefront_analytics.analytics.sql_source import SQLDataSource
from storefront_analytics.config import get_settings
from storefront_analytics.config.logging import configure_logging
from storefront_analytics.database.connection import close_database, init_database
from storefront_analytics.database.redis_client import close_redis, init_redis
from storefront_analytics.serving.middleware import RequestLoggingMiddleware
from storefront_analytics.serving.registry import PipelineRegistry
from storefront_analytics.serving.routes import analytics_router, health_router

logger = structlog.get_logger(__name__)


async def _connect_sql_source() -> SQLDataSource:
    """SQL data source with a Redis change feed, or no live updates if Redis is down."""
    settings = get_settings()
    await init_database()

    try:
        redis = await init_redis()
    except Exception as e:
        logger.warning("Redis unavailable, live refresh disabled", error=str(e))
        return SQLDataSource()

    return SQLDataSource(change_feed=RedisChangeFeed(redis, prefix=settings.redis.change_channel_prefix))


def create_app(data_source: Optional[DataSource] = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        data_source: Serve reports from this source instead of connecting
            to the configured database

    Returns:
        Configured FastAPI app instance
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        logger.info("Starting Storefront Analytics API", environment=settings.app_env)

        owns_source = data_source is None
        source = data_source
        if owns_source:
            try:
                source = await _connect_sql_source()
            except Exception as e:
                logger.error("Database init failed, analytics unavailable", error=str(e))

        app.state.registry = (
            PipelineRegistry(source, settings.analytics) if source is not None else None
        )

        yield

        logger.info("Shutting down...")
        if app.state.registry is not None:
            await app.state.registry.close()
        if owns_source:
            if source is not None:
                await source.close()
            await close_redis()
            await close_database()

    app = FastAPI(
        title="Storefront Analytics API",
        description="E-commerce, traffic and live order analytics for the storefront dashboard",
        version=settings.version,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )
    app.state.registry = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(analytics_router, prefix="/api/v1/analytics", tags=["Analytics"])

    if settings.monitoring.enable_metrics:
        app.mount("/metrics", make_asgi_app())

    @app.get("/api/v1/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": "Storefront Analytics API",
            "version": settings.version,
            "environment": settings.app_env,
            "reports": ["ecommerce", "traffic", "live"],
        }

    return app
