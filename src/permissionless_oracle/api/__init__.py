"""Inbound HTTP surface (FastAPI)."""
