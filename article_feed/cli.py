"""
CLI tool for article aggregation.

Usage:
    # Fetch and merge all sources (served from cache when fresh)
    article-feed fetch

    # Only one category, saved to a file
    article-feed fetch --category "Jewelry History" --output articles.json

    # Which sources are configured
    article-feed status

    # Source configuration and cache lifetimes
    article-feed stats

    # Drop every source cache
    article-feed clear
"""

import argparse
import asyncio
import json
import sys

from article_feed.config import get_settings
from article_feed.core.logging import configure_logging
from article_feed.core.taxonomy import ArticleCategory, coerce_category
from article_feed.services.data_ingestion.aggregator import (
    SourceAggregator,
    build_aggregator,
    filter_by_category,
)


def create_aggregator() -> SourceAggregator:
    """Create the aggregator from environment config."""
    return build_aggregator(get_settings())


def _parse_category(value: str) -> ArticleCategory:
    category = coerce_category(value, default=None)
    if category is not None:
        return category
    raise argparse.ArgumentTypeError(
        f"invalid category {value!r} (choose from {', '.join(c.value for c in ArticleCategory)})"
    )


async def cmd_fetch(args, aggregator: SourceAggregator) -> int:
    """Fetch articles from all sources."""
    print("Fetching articles from all sources...")
    articles = await aggregator.fetch_all_articles()

    if args.category:
        articles = filter_by_category(articles, args.category)

    print("\n" + "=" * 60)
    print("AGGREGATION RESULTS")
    print("=" * 60)

    for result in aggregator.last_results:
        print(result)

    print("-" * 60)
    print(f"Total articles: {len(articles)}")

    if args.output:
        output_data = [a.model_dump(mode="json", by_alias=True) for a in articles]
        with open(args.output, "w") as f:
            json.dump(output_data, f, indent=2)
        print(f"\nArticles saved to: {args.output}")

    if args.verbose:
        print("\n" + "=" * 60)
        print("SAMPLE ARTICLES")
        print("=" * 60)

        for article in articles[:10]:
            print(f"\n[{article.source_name}] {article.title}")
            print(f"  URL: {article.url}")
            print(f"  Category: {article.category.value}")
            print(f"  Date: {article.published_at or article.fetched_at}")
            if article.summary:
                print(f"  Summary: {article.summary}")

    return 0


async def cmd_status(args, aggregator: SourceAggregator) -> int:
    """Show which sources are configured."""
    status = aggregator.get_sources_status()

    print("\n" + "=" * 40)
    print("SOURCE STATUS")
    print("=" * 40)

    for source, enabled in status.model_dump().items():
        label = "enabled" if enabled else "disabled"
        print(f"  {source}: {label}")

    return 0


async def cmd_stats(args, aggregator: SourceAggregator) -> int:
    """Show source statistics."""
    stats = aggregator.get_source_stats()

    print("\n" + "=" * 50)
    print("SOURCE CONFIGURATION")
    print("=" * 50)
    print(f"Total sources: {stats['total_sources']}")
    print()

    for source in stats["sources"]:
        print(f"  {source['name']}")
        print(f"    Enabled: {source['enabled']}")
        print(f"    Priority: {source['priority']}")
        print(f"    Cache TTL: {source['cache_ttl_hours']:g}h")
        print()

    return 0


async def cmd_clear(args, aggregator: SourceAggregator) -> int:
    """Clear every source cache."""
    await aggregator.clear_all_caches()
    print("Caches cleared")
    return 0


COMMANDS = {
    "fetch": cmd_fetch,
    "status": cmd_status,
    "stats": cmd_stats,
    "clear": cmd_clear,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="article-feed",
        description="Article Feed - multi-source article aggregation CLI",
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    fetch_parser = subparsers.add_parser("fetch", help="Fetch and merge articles")
    fetch_parser.add_argument(
        "--category", "-c",
        type=_parse_category,
        help="Only show one category (e.g. Gemstones, \"Jewelry History\")",
    )
    fetch_parser.add_argument(
        "--output", "-o",
        help="Output file for articles (JSON)",
    )
    fetch_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show article previews",
    )

    subparsers.add_parser("status", help="Show which sources are enabled")
    subparsers.add_parser("stats", help="Show source statistics")
    subparsers.add_parser("clear", help="Clear all source caches")

    return parser


def main(argv=None, aggregator: SourceAggregator = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)

    aggregator = aggregator or create_aggregator()
    return asyncio.run(COMMANDS[args.command](args, aggregator))


if __name__ == "__main__":
    sys.exit(main())
