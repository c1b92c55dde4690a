"""
Strategy storage.

Strategies are loaded by code; the engine mandates no caching, callers
may wrap any store in ``CachedStrategyLoader``.
"""

from .defaults import DEFAULT_STRATEGY_CODE, default_strategy_store
from .store import CachedStrategyLoader, InMemoryStrategyStore, StrategyStore, load_strategies_from_yaml

__all__ = [
    "DEFAULT_STRATEGY_CODE",
    "CachedStrategyLoader",
    "InMemoryStrategyStore",
    "StrategyStore",
    "default_strategy_store",
    "load_strategies_from_yaml",
]
