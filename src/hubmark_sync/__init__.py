"""Bookmark synchronisation between a local replica and a GitHub-hosted JSON document."""

__version__ = "0.1.0"
