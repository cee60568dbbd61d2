"""
Exception types raised inside the article pipeline.

None of these escape `fetch_articles()` or `fetch_all_articles()`; they exist so
adapters can fail loudly internally and be caught at one boundary.
"""


class ArticleFeedError(Exception):
    """Base class for article pipeline errors."""


class SourceFetchError(ArticleFeedError):
    """An upstream returned an error status, timed out, or sent junk."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class CacheError(ArticleFeedError):
    """The persisted cache store could not be read or written."""
