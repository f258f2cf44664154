"""Refresh pipeline: week window, caches, fetchers and scheduler."""
