"""
Main FastAPI application for Article Feed.
"""

from contextlib import asynccontextmanager

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from article_feed import __version__
from article_feed.api.routes import router, set_aggregator
from article_feed.config import get_settings
from article_feed.core.logging import configure_logging
from article_feed.services.data_ingestion.aggregator import (
    SourceAggregator,
    build_aggregator,
)

logger = structlog.get_logger(__name__)

# Global instances
aggregator: SourceAggregator = None
scheduler: AsyncIOScheduler = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - handles startup and shutdown."""
    global aggregator, scheduler

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)

    logger.info(
        "Initializing aggregator",
        cache_backend=settings.cache_backend,
        cache_dir=settings.cache_dir,
    )
    aggregator = build_aggregator(settings)
    set_aggregator(aggregator)
    logger.info("Sources configured", **aggregator.get_sources_status().model_dump())

    # Periodic cache warming
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        run_refresh,
        IntervalTrigger(hours=settings.refresh_interval_hours),
        id="article_refresh",
        name="Article Cache Refresh",
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Scheduler started", interval_hours=settings.refresh_interval_hours)

    yield

    # Shutdown
    logger.info("Shutting down")
    if scheduler:
        scheduler.shutdown()
    set_aggregator(None)


async def run_refresh():
    """Warm the caches; fresh caches make this a no-op per source."""
    if aggregator is None:
        return
    try:
        articles = await aggregator.fetch_all_articles()
        logger.info("Scheduled refresh completed", count=len(articles))
    except Exception as e:
        logger.error("Scheduled refresh failed", error=str(e))


# Create FastAPI app
app = FastAPI(
    title="Article Feed",
    description="Educational jewelry articles from Wikipedia, industry feeds and curated sites.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "article-feed",
        "version": __version__,
    }


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "Article Feed API",
        "version": __version__,
        "docs": "/docs",
        "endpoints": {
            "articles": "/api/v1/articles",
            "article": "/api/v1/articles/{article_id}",
            "refresh": "/api/v1/articles/refresh",
            "cache": "/api/v1/articles/cache",
            "sources_status": "/api/v1/sources/status",
            "sources_stats": "/api/v1/sources/stats",
        },
    }


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "article_feed.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
