"""
Article Feed - multi-source article aggregation for the jewelry identifier app.

Pulls educational articles from Wikipedia, industry RSS feeds and curated
external sites, normalizes them into one schema, deduplicates and orders them.
"""

__version__ = "0.1.0"
