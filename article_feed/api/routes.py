"""
FastAPI routes for the Article Feed API.
"""

from typing import Annotated, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from article_feed.core.taxonomy import ArticleCategory
from article_feed.models.domain import Article, SourcesStatus
from article_feed.services.data_ingestion.aggregator import (
    SourceAggregator,
    filter_by_category,
    get_article_by_id,
)

logger = structlog.get_logger(__name__)
router = APIRouter()

_aggregator: Optional[SourceAggregator] = None


def set_aggregator(aggregator: Optional[SourceAggregator]) -> None:
    """Install the aggregator built at startup."""
    global _aggregator
    _aggregator = aggregator


def get_aggregator() -> SourceAggregator:
    """Dependency to get the process aggregator."""
    if _aggregator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Aggregator not initialized",
        )
    return _aggregator


AggregatorDep = Annotated[SourceAggregator, Depends(get_aggregator)]


# ============================================================================
# Article Routes
# ============================================================================


@router.get("/articles", response_model=list[Article])
async def list_articles(
    aggregator: AggregatorDep,
    category: Annotated[Optional[ArticleCategory], Query()] = None,
):
    """
    Get the merged article list.

    Served from the per-source caches when fresh; ordered by source priority
    then recency. Optionally narrowed to one category.
    """
    articles = await aggregator.fetch_all_articles()
    if category is not None:
        articles = filter_by_category(articles, category)
    return articles


@router.get("/articles/{article_id}", response_model=Article)
async def get_article(article_id: str, aggregator: AggregatorDep):
    """Get a single article by id."""
    articles = await aggregator.fetch_all_articles()
    article = get_article_by_id(articles, article_id)
    if article is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Article {article_id} not found",
        )
    return article


@router.post("/articles/refresh", response_model=list[Article])
async def refresh_articles(aggregator: AggregatorDep):
    """Drop all caches and fetch everything live."""
    logger.info("Manual refresh requested")
    return await aggregator.refresh_all_articles()


@router.delete("/articles/cache", status_code=status.HTTP_204_NO_CONTENT)
async def clear_caches(aggregator: AggregatorDep):
    """Clear every source cache (best effort)."""
    await aggregator.clear_all_caches()


# ============================================================================
# Source Routes
# ============================================================================


@router.get("/sources/status", response_model=SourcesStatus)
async def sources_status(aggregator: AggregatorDep):
    """Which sources are configured to run."""
    return aggregator.get_sources_status()


@router.get("/sources/stats")
async def sources_stats(aggregator: AggregatorDep):
    """Per-source configuration and the outcome of the last aggregation."""
    return aggregator.get_source_stats()
