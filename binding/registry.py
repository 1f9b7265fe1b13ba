# binding/registry.py
from __future__ import annotations

import logging
from itertools import product
from typing import Dict, Iterable, List, Optional, Tuple

from pipeline.exceptions import ConfigurationError, NoStrategyFoundError

from .protocols import BindingStrategy

logger = logging.getLogger(__name__)

WILDCARD = '*'

StrategyKey = Tuple[str, str]


class StrategyRegistry:
    """
    Closed (source type, capability) → strategy table.

    Lookup tries the exact key, then ('*', capability). Keys are registered
    once: the first strategy for a key wins and later ones are logged and
    ignored.
    """

    def __init__(self, strategies: Iterable[BindingStrategy] = ()) -> None:
        self._table: Dict[StrategyKey, BindingStrategy] = {}
        for strategy in strategies:
            self.register(strategy)

    # ------------------------------------------------------------------ #
    def register(self, strategy: BindingStrategy) -> List[StrategyKey]:
        if not isinstance(strategy, BindingStrategy):
            raise ConfigurationError(f"{strategy!r} does not implement the BindingStrategy protocol", stage='binding')
        if not strategy.source_types or not strategy.capabilities:
            raise ConfigurationError(f"Strategy '{strategy.strategy_id}' declares no source types or capabilities", stage='binding')

        added = [key for key in product(strategy.source_types, strategy.capabilities)
                 if self.register_key(key[0], key[1], strategy)]
        logger.debug("Strategy %s registered for %d key(s)", strategy.strategy_id, len(added))
        return added

    def register_key(self, source_type: str, capability: str, strategy: BindingStrategy) -> bool:
        key = (source_type, capability)
        existing = self._table.get(key)
        if existing is not None:
            logger.warning(
                "DUPLICATE STRATEGY for %s from '%s' ignored; keeping '%s'",
                key, strategy.strategy_id, existing.strategy_id,
            )
            return False
        self._table[key] = strategy
        return True

    # ------------------------------------------------------------------ #
    def find(self, source_type: str, capability: str) -> Optional[BindingStrategy]:
        strategy = self._table.get((source_type, capability))
        if strategy is None:
            strategy = self._table.get((WILDCARD, capability))
        return strategy

    def lookup(self, source_type: str, capability: str) -> BindingStrategy:
        strategy = self.find(source_type, capability)
        if strategy is None:
            raise NoStrategyFoundError(source_type, capability)
        return strategy

    def keys(self) -> List[StrategyKey]:
        return sorted(self._table)

    def __contains__(self, key: StrategyKey) -> bool:
        return key in self._table

    def __len__(self) -> int:
        return len(self._table)
