"""Load balancing across provider configs."""

import logging
import math
import random
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from ..core.exceptions import ProviderUnavailableError
from .config import ProviderConfig, generate_config_id

logger = logging.getLogger(__name__)

DEFAULT_WEIGHT = 10


class PoolStrategy(str, Enum):
    """How ``get_provider`` picks among the available configs."""
    ROUND_ROBIN = "round-robin"
    RANDOM = "random"
    LEAST_CONCURRENT = "least-concurrent"
    WEIGHTED_RANDOM = "weighted-random"
    FALLBACK = "fallback"


@dataclass
class ProviderState:
    id: str
    config: ProviderConfig
    current_concurrent: int = 0
    enabled: bool = True

    @property
    def available(self) -> bool:
        limit = self.config.max_concurrent_requests
        return self.enabled and self.current_concurrent < (limit if limit is not None else math.inf)


class ProviderHandle:
    """A leased config. Call :meth:`release` once the request is done, or use ``with``."""

    def __init__(self, pool: "ProviderPool", state: ProviderState):
        self._pool = pool
        self._state = state
        self.id = state.id
        self.config = state.config

    def release(self) -> None:
        self._pool._release(self._state)

    def disable(self) -> None:
        self._pool.disable_provider(self.id)

    def enable(self) -> None:
        self._pool.enable_provider(self.id)

    def __enter__(self) -> "ProviderHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"ProviderHandle(id={self.id[:8]})"


def _round_robin(pool: "ProviderPool", available: List[ProviderState]) -> ProviderState:
    index = pool._rr_index % len(available)
    pool._rr_index = (index + 1) % len(available)
    return available[index]


def _random(pool: "ProviderPool", available: List[ProviderState]) -> ProviderState:
    return pool._random.choice(available)


def _least_concurrent(pool: "ProviderPool", available: List[ProviderState]) -> ProviderState:
    # min keeps the first of equal candidates
    return min(available, key=lambda p: p.current_concurrent)


def _weight(state: ProviderState) -> int:
    limit = state.config.max_concurrent_requests
    return limit if limit is not None else DEFAULT_WEIGHT


def _weighted_random(pool: "ProviderPool", available: List[ProviderState]) -> ProviderState:
    total = sum(_weight(p) for p in available)
    target = pool._random.random() * total
    cumulative = 0
    for state in available:
        cumulative += _weight(state)
        if target <= cumulative:
            return state
    return available[0]


def _fallback(pool: "ProviderPool", available: List[ProviderState]) -> ProviderState:
    for state in available:
        if state.current_concurrent == 0:
            return state
    return available[0]


STRATEGY_HANDLERS: Dict[PoolStrategy, Callable[["ProviderPool", List[ProviderState]], ProviderState]] = {
    PoolStrategy.ROUND_ROBIN: _round_robin,
    PoolStrategy.RANDOM: _random,
    PoolStrategy.LEAST_CONCURRENT: _least_concurrent,
    PoolStrategy.WEIGHTED_RANDOM: _weighted_random,
    PoolStrategy.FALLBACK: _fallback,
}


def _coerce_strategy(strategy: Union[str, PoolStrategy]) -> PoolStrategy:
    if not strategy:
        raise ValueError("strategy must not be empty")
    try:
        return PoolStrategy(strategy)
    except ValueError as e:
        raise ValueError(
            f"Unknown pool strategy {strategy!r}, expected one of {[s.value for s in PoolStrategy]}"
        ) from e


class ProviderPool:
    """Set of provider configs with per-config in-flight counters.

    Selection and counter updates happen under a lock, so a pool can be
    shared between threads as well as between tasks. The pool does not
    queue: when nothing is available ``get_provider`` raises
    :class:`ProviderUnavailableError`.
    """

    def __init__(
        self,
        strategy: Union[str, PoolStrategy] = PoolStrategy.ROUND_ROBIN,
        rng: Optional[random.Random] = None,
    ):
        self.strategy = _coerce_strategy(strategy)
        self._providers: List[ProviderState] = []
        self._rr_index = 0
        self._random = rng or random.Random()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._providers)

    def add_provider(self, config: Union[ProviderConfig, Mapping[str, Any]]) -> str:
        """Add a config and return its id. Adding an identical config again is a no-op."""
        if not isinstance(config, ProviderConfig):
            config = ProviderConfig.from_dict(config)
        config_id = generate_config_id(config)

        with self._lock:
            if any(p.id == config_id for p in self._providers):
                logger.debug(f"Provider config {config_id[:8]} already in pool")
                return config_id
            self._providers.append(ProviderState(id=config_id, config=config))

        logger.debug(f"Added provider config {config_id[:8]}")
        return config_id

    def remove_provider(self, provider_id: str) -> None:
        with self._lock:
            self._providers = [p for p in self._providers if p.id != provider_id]
        logger.info(f"Removed provider config {provider_id[:8]}")

    def enable_provider(self, provider_id: str) -> None:
        self.set_provider_status(provider_id, True)

    def disable_provider(self, provider_id: str) -> None:
        self.set_provider_status(provider_id, False)

    def set_provider_status(self, provider_id: str, enabled: bool) -> None:
        with self._lock:
            state = self._find(provider_id)
            if state is None:
                return
            state.enabled = enabled
        logger.info(f"Provider config {provider_id[:8]} {'enabled' if enabled else 'disabled'}")

    def set_strategy(self, strategy: Union[str, PoolStrategy]) -> None:
        self.strategy = _coerce_strategy(strategy)

    def get_provider(self, strategy: Optional[Union[str, PoolStrategy]] = None) -> ProviderHandle:
        """Lease a config under ``strategy`` (the pool's strategy by default)."""
        handler = STRATEGY_HANDLERS[_coerce_strategy(strategy) if strategy else self.strategy]

        with self._lock:
            available = [p for p in self._providers if p.available]
            if not available:
                raise ProviderUnavailableError()
            selected = handler(self, available)
            selected.current_concurrent += 1

        logger.debug(
            f"Selected provider config {selected.id[:8]} "
            f"({selected.current_concurrent} in flight)"
        )
        return ProviderHandle(self, selected)

    def get_status(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                {
                    "id": p.id,
                    "enabled": p.enabled,
                    **p.config.to_dict(),
                    "current_concurrent": p.current_concurrent,
                }
                for p in self._providers
            ]

    def _find(self, provider_id: str) -> Optional[ProviderState]:
        for state in self._providers:
            if state.id == provider_id:
                return state
        return None

    def _release(self, state: ProviderState) -> None:
        with self._lock:
            state.current_concurrent = max(0, state.current_concurrent - 1)


def create_provider_pool(strategy: Union[str, PoolStrategy] = PoolStrategy.ROUND_ROBIN) -> ProviderPool:
    return ProviderPool(strategy)
