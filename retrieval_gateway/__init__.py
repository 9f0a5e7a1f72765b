"""Ingestion, lookup and deletion front end for a sharded image index."""
