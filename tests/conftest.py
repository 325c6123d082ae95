"""
PyTest configuration and shared fixtures for the hash ring tests.

This file provides common test utilities and fixtures that can be used
across all test modules.
"""

import pytest
import sys
import os
import random
import time
from typing import List

# Add src directory to Python path for all tests
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

# Import after path setup
from consistent_hash import ConsistentHashRing
from position_generators import FixedPositions, RandomPositions


SCENARIO_POSITIONS = {
    "A": [10, 40, 70],
    "B": [25, 55, 85],
}


@pytest.fixture
def scenario_ring() -> ConsistentHashRing:
    """Ring of 100 intervals with machines A and B at known positions."""
    return ConsistentHashRing(
        interval_count=100,
        shards_per_machine=3,
        position_generator=FixedPositions(SCENARIO_POSITIONS),
        machines=["A", "B"],
    )


@pytest.fixture
def hash_ring() -> ConsistentHashRing:
    """Create a seeded hash ring with three test machines."""
    return ConsistentHashRing(
        position_generator=RandomPositions(seed=7),
        machines=["machine1", "machine2", "machine3"],
    )


@pytest.fixture
def sample_hashes() -> List[int]:
    """A fixed sample of hash values across the default keyspace."""
    rng = random.Random(1234)
    return [rng.randrange(2 ** 32) for _ in range(10000)]


# Pytest markers for organizing tests
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "performance: Performance benchmarks"
    )
    config.addinivalue_line(
        "markers", "slow: Slow running tests"
    )


# Custom test utilities
class TestUtils:
    """Utility functions for tests."""

    @staticmethod
    def measure_time(func, *args, **kwargs):
        """Measure execution time of a function."""
        start = time.time()
        result = func(*args, **kwargs)
        duration = time.time() - start
        return result, duration

    @staticmethod
    def assert_distribution_balance(distribution, tolerance=0.4):
        """Assert that load distribution is reasonably balanced."""
        if not distribution:
            return

        values = list(distribution.values())
        avg = sum(values) / len(values)

        for machine, value in distribution.items():
            ratio = value / avg
            assert (1 - tolerance) < ratio < (1 + tolerance), \
                f"Machine {machine} has {value:.2f}%, expected ~{avg:.2f}% (±{tolerance*100}%)"


@pytest.fixture
def test_utils() -> TestUtils:
    """Provide test utilities."""
    return TestUtils()
