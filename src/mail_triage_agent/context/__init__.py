"""Active context aggregation and caching."""

from .aggregator import CACHE_KEY, ContextAggregator

__all__ = ["CACHE_KEY", "ContextAggregator"]
