"""Unified content curation engine for per-user social and feed sources."""

__version__ = "0.1.0"
