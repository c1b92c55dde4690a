"""
Strategy storage for the Pricing Service.
"""

import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

import yaml

from shared.errors import InvalidBlockDefinition, StrategyNotFound
from shared.logging import get_logger
from ..rules.models import PricingBlock, PricingStrategy
from ..rules.parser import parse_block, parse_strategy


class StrategyStore(Protocol):
    """Anything that can hand out a parsed strategy by code."""

    def load_strategy(self, code: str) -> PricingStrategy:
        ...

    def list_codes(self) -> List[str]:
        ...

    @property
    def default_code(self) -> Optional[str]:
        ...


class InMemoryStrategyStore:
    """Strategy store built from block and strategy rows.

    Rows are parsed eagerly, so a malformed definition fails at startup and
    never during a pricing run.
    """

    def __init__(
        self,
        blocks: Iterable[Mapping[str, Any]],
        strategies: Iterable[Mapping[str, Any]],
        default_currency: str = "USD",
    ):
        self.logger = get_logger("pricing.strategies.store")
        self.blocks: Dict[str, PricingBlock] = {}
        for row in blocks:
            block = parse_block(row)
            if block.block_id in self.blocks:
                raise InvalidBlockDefinition(block.block_id, "Duplicate block id")
            self.blocks[block.block_id] = block

        self.strategies: Dict[str, PricingStrategy] = {}
        for row in strategies:
            strategy = parse_strategy(row, self.blocks, default_currency)
            self.strategies[strategy.code] = strategy

        self.logger.info(
            "Strategy store loaded",
            blocks=len(self.blocks),
            strategies=sorted(self.strategies),
        )

    def load_strategy(self, code: str) -> PricingStrategy:
        strategy = self.strategies.get(code)
        if strategy is None:
            raise StrategyNotFound(code)
        return strategy

    def list_codes(self) -> List[str]:
        return sorted(self.strategies)

    @property
    def default_code(self) -> Optional[str]:
        for strategy in self.strategies.values():
            if strategy.is_default:
                return strategy.code
        return None


def load_strategies_from_yaml(path: str, default_currency: str = "USD") -> InMemoryStrategyStore:
    """Build a store from a YAML file with ``blocks`` and ``strategies`` sections."""
    with open(path, "r", encoding="utf-8") as handle:
        document = yaml.safe_load(handle) or {}
    if not isinstance(document, Mapping):
        raise InvalidBlockDefinition("<file>", f"{path} must contain a mapping", {"path": path})
    return InMemoryStrategyStore(
        document.get("blocks") or [],
        document.get("strategies") or [],
        default_currency=default_currency,
    )


class CachedStrategyLoader:
    """TTL cache in front of a strategy store."""

    def __init__(
        self,
        store: StrategyStore,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.logger = get_logger("pricing.strategies.cache")
        self._entries: Dict[str, Tuple[float, PricingStrategy]] = {}
        self._lock = threading.Lock()

    def load_strategy(self, code: str) -> PricingStrategy:
        now = self.clock()
        with self._lock:
            entry = self._entries.get(code)
            if entry is not None and entry[0] > now:
                self.logger.debug("Cache hit for strategy", strategy_code=code)
                return entry[1]

        strategy = self.store.load_strategy(code)
        with self._lock:
            self._entries[code] = (now + self.ttl_seconds, strategy)
        return strategy

    def list_codes(self) -> List[str]:
        return self.store.list_codes()

    @property
    def default_code(self) -> Optional[str]:
        return self.store.default_code

    def clear(self):
        """Drop every cached strategy."""
        with self._lock:
            self._entries.clear()
        self.logger.info("Strategy cache cleared")
