"""
Services layer for Article Feed.

data_ingestion/ holds the source adapters, their persisted caches and the
aggregator that merges them into one ordered list.
"""
