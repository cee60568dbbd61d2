"""
Application configuration using Pydantic Settings.
"""

from datetime import timedelta
from functools import lru_cache
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from article_feed.core.taxonomy import (
    DEFAULT_CATEGORY_MAPPING,
    DEFAULT_WIKIPEDIA_TOPICS,
    ArticleCategory,
)


class RSSFeedConfig(BaseModel):
    """One industry RSS feed."""

    url: str
    name: str
    category: ArticleCategory = ArticleCategory.GEMSTONES
    enabled: bool = True


class CuratedSourceConfig(BaseModel):
    """A curated external site searched through Exa or Jina."""

    domain: str  # e.g. "gia.edu"
    name: str
    category: ArticleCategory = ArticleCategory.STYLES
    search_query: Optional[str] = None
    enabled: bool = True


class ArticleSettings(BaseSettings):
    """Topics, feeds, curated sites and per-source cache policy."""

    model_config = SettingsConfigDict(env_prefix="ARTICLES_", extra="ignore")

    # Wikipedia
    topics: list[str] = Field(default_factory=lambda: list(DEFAULT_WIKIPEDIA_TOPICS))
    category_mapping: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_CATEGORY_MAPPING)
    )
    max_articles: int = Field(default=10, ge=1, le=50)
    fallback_image: str = Field(
        default="https://images.unsplash.com/photo-1518837695005-2083093ee35b?w=400",
    )

    # RSS and curated sources are empty until configured for a deployment
    rss_feeds: list[RSSFeedConfig] = Field(default_factory=list)
    curated_sources: list[CuratedSourceConfig] = Field(default_factory=list)

    # Cache lifetimes
    cache_ttl_wikipedia: timedelta = Field(default=timedelta(days=7))
    cache_ttl_rss: timedelta = Field(default=timedelta(hours=24))
    cache_ttl_external: timedelta = Field(default=timedelta(hours=24))

    # Fetch limits
    max_items_per_feed: int = Field(default=5, ge=1)
    exa_max_results: int = Field(default=10, ge=1, le=100)
    exa_query: str = Field(default="jewelry gemstone diamond ring guide education")
    jina_max_domains: int = Field(
        default=3,
        ge=1,
        description="Curated domains queried one by one on the Jina fallback path",
    )
    jina_results_per_domain: int = Field(default=3, ge=1)
    extract_max_chars: int = Field(default=2000, ge=100)
    extract_max_words: int = Field(default=500, ge=50)

    # Optional same-source title dedup pass (disabled by default)
    title_similarity_threshold: Optional[float] = Field(default=None, gt=0.0, le=1.0)

    @field_validator("topics")
    @classmethod
    def strip_topics(cls, v: list[str]) -> list[str]:
        return [t.strip() for t in v if t and t.strip()]


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Article Feed"
    app_version: str = "0.1.0"
    debug: bool = Field(default=False)
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    refresh_interval_hours: int = Field(
        default=24,
        ge=1,
        description="Interval for the background cache-warming refresh",
    )

    # API keys (all optional; missing keys disable the sources that need them)
    jina_api_key: Optional[str] = Field(default=None)
    exa_api_key: Optional[str] = Field(default=None)

    # Upstream endpoints
    wikipedia_api_url: str = Field(default="https://en.wikipedia.org/w/api.php")
    jina_reader_url: str = Field(default="https://r.jina.ai/")
    jina_search_url: str = Field(default="https://s.jina.ai/")
    exa_api_url: str = Field(default="https://api.exa.ai/search")

    # Request timeouts (seconds)
    wikipedia_timeout_seconds: float = Field(default=15.0, gt=0)
    rss_timeout_seconds: float = Field(default=15.0, gt=0)
    external_timeout_seconds: float = Field(default=30.0, gt=0)

    # Cache storage
    cache_backend: Literal["file", "memory"] = "file"
    cache_dir: str = Field(default=".article_cache")

    # Articles (nested)
    articles: ArticleSettings = Field(default_factory=ArticleSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def enabled_curated_sources(settings: Settings) -> list[CuratedSourceConfig]:
    """Curated sources that should be searched."""
    return [s for s in settings.articles.curated_sources if s.enabled]


def curated_sources_by_category(
    settings: Settings,
    category: ArticleCategory,
) -> list[CuratedSourceConfig]:
    """Enabled curated sources for one category."""
    return [s for s in enabled_curated_sources(settings) if s.category == category]


def enabled_rss_feeds(settings: Settings) -> list[RSSFeedConfig]:
    """RSS feeds that should be fetched."""
    return [f for f in settings.articles.rss_feeds if f.enabled]
