"""Outbound adapters for LLMs, directories, fetchers, payments and proof storage."""
