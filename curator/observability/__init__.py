"""Observability layer - logging and metrics."""

from curator.observability.logging import setup_logging
from curator.observability.metrics import CurationMetrics

__all__ = ["setup_logging", "CurationMetrics"]
