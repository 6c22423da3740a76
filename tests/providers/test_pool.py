"""Tests for the provider config pool."""

import random
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from luna_llm.core import ProviderUnavailableError
from luna_llm.providers import PoolStrategy, ProviderConfig, ProviderPool, create_provider_pool
from luna_llm.providers.config import generate_config_id


class FixedRandom(random.Random):
    """Random source returning scripted values from ``random()``."""

    def __init__(self, values):
        super().__init__(0)
        self.values = list(values)

    def random(self):
        return self.values.pop(0)


def make_pool(strategy="round-robin", *keys, rng=None, **config_kwargs):
    pool = ProviderPool(strategy, rng=rng)
    ids = [pool.add_provider(ProviderConfig(api_key=key, **config_kwargs)) for key in keys]
    return pool, ids


class TestProviderPool:
    """Test suite for ProviderPool."""

    def test_round_robin_is_fair(self):
        """Test that each config is picked once per cycle."""
        pool, ids = make_pool("round-robin", "k1", "k2", "k3")

        picked = []
        for _ in range(6):
            with pool.get_provider() as handle:
                picked.append(handle.id)

        assert picked == ids + ids

    def test_round_robin_skips_disabled(self):
        """Test that disabled configs are never selected."""
        pool, ids = make_pool("round-robin", "k1", "k2", "k3")
        pool.disable_provider(ids[1])

        picked = []
        for _ in range(4):
            with pool.get_provider() as handle:
                picked.append(handle.id)

        assert ids[1] not in picked
        assert set(picked) == {ids[0], ids[2]}

    def test_dedup(self):
        """Test that identical configs are stored once regardless of key order."""
        pool = ProviderPool()

        first = pool.add_provider({"apiKey": "k", "baseURL": "https://a"})
        second = pool.add_provider({"base_url": "https://a", "api_key": "k"})
        third = pool.add_provider(ProviderConfig(api_key="k", base_url="https://a"))

        assert first == second == third
        assert len(pool) == 1

    def test_max_concurrent(self):
        """Test that a config at its in-flight limit is unavailable until released."""
        pool, _ = make_pool("round-robin", "k1", max_concurrent_requests=1)

        handle = pool.get_provider()
        with pytest.raises(ProviderUnavailableError):
            pool.get_provider()

        handle.release()
        pool.get_provider().release()

    def test_empty_pool(self):
        """Test that an empty pool raises ProviderUnavailableError."""
        with pytest.raises(ProviderUnavailableError):
            ProviderPool().get_provider()

    def test_all_disabled(self):
        """Test that a pool with only disabled configs raises."""
        pool, ids = make_pool("round-robin", "k1")
        pool.set_provider_status(ids[0], False)

        with pytest.raises(ProviderUnavailableError):
            pool.get_provider()

        pool.enable_provider(ids[0])
        pool.get_provider().release()

    def test_least_concurrent(self):
        """Test that the config with the fewest requests in flight is chosen."""
        pool, ids = make_pool("least-concurrent", "k1", "k2")

        first = pool.get_provider()
        second = pool.get_provider()
        first.release()
        third = pool.get_provider()

        assert [first.id, second.id, third.id] == [ids[0], ids[1], ids[0]]

    def test_fallback(self):
        """Test that fallback prefers the first idle config."""
        pool, ids = make_pool("fallback", "k1", "k2")

        picked = [pool.get_provider().id for _ in range(3)]

        assert picked == [ids[0], ids[1], ids[0]]

    def test_weighted_random(self):
        """Test that selection follows the cumulative weights."""
        rng = FixedRandom([0.05, 0.5, 0.99])
        pool = ProviderPool("weighted-random", rng=rng)
        light = pool.add_provider(ProviderConfig(api_key="k1", max_concurrent_requests=1))
        heavy = pool.add_provider(ProviderConfig(api_key="k2"))

        picked = []
        for _ in range(3):
            with pool.get_provider() as handle:
                picked.append(handle.id)

        assert picked == [light, heavy, heavy]

    def test_random(self):
        """Test that random selection stays within the available configs."""
        pool, ids = make_pool("random", "k1", "k2", "k3", rng=random.Random(7))
        pool.disable_provider(ids[2])

        picked = set()
        for _ in range(30):
            with pool.get_provider() as handle:
                picked.add(handle.id)

        assert picked == {ids[0], ids[1]}

    def test_strategy_override(self):
        """Test that get_provider can use another strategy for one call."""
        pool, ids = make_pool("round-robin", "k1", "k2")
        busy = pool.get_provider(strategy=PoolStrategy.FALLBACK)

        assert busy.id == ids[0]
        assert pool.get_provider(strategy="fallback").id == ids[1]

    def test_invalid_strategy(self):
        """Test that unknown or empty strategies are rejected."""
        with pytest.raises(ValueError):
            ProviderPool("")
        with pytest.raises(ValueError):
            create_provider_pool("best-effort")

        pool = ProviderPool()
        pool.set_strategy("least-concurrent")
        assert pool.strategy == PoolStrategy.LEAST_CONCURRENT
        with pytest.raises(ValueError):
            pool.set_strategy("fastest")

    def test_release_floor(self):
        """Test that releasing twice never makes the counter negative."""
        pool, _ = make_pool("round-robin", "k1")

        handle = pool.get_provider()
        handle.release()
        handle.release()

        assert pool.get_status()[0]["current_concurrent"] == 0

    def test_status(self):
        """Test the status report."""
        pool, ids = make_pool("round-robin", "k1", "k2", timeout=5.0)
        handle = pool.get_provider()
        pool.disable_provider(ids[1])

        status = pool.get_status()

        assert status[0] == {
            "id": ids[0],
            "enabled": True,
            "api_key": "k1",
            "timeout": 5.0,
            "current_concurrent": 1,
        }
        assert status[1]["enabled"] is False
        handle.release()

    def test_remove(self):
        """Test removing a config."""
        pool, ids = make_pool("round-robin", "k1", "k2")

        pool.remove_provider(ids[0])

        assert len(pool) == 1
        assert pool.get_provider().id == ids[1]

    def test_handle_disable(self):
        """Test disabling a config through its handle."""
        pool, ids = make_pool("round-robin", "k1", "k2")

        with pool.get_provider() as handle:
            handle.disable()

        assert [s["enabled"] for s in pool.get_status()] == [False, True]
        assert handle.id == generate_config_id(ProviderConfig(api_key="k1"))

    def test_threads_respect_limit(self):
        """Test that concurrent leases from threads never exceed the limit."""
        pool, _ = make_pool("round-robin", "k1", max_concurrent_requests=5)
        barrier = threading.Barrier(20)

        def lease():
            barrier.wait()
            try:
                return pool.get_provider()
            except ProviderUnavailableError:
                return None

        with ThreadPoolExecutor(max_workers=20) as executor:
            handles = list(executor.map(lambda _: lease(), range(20)))

        leased = [h for h in handles if h is not None]
        assert len(leased) == 5
        assert pool.get_status()[0]["current_concurrent"] == 5
