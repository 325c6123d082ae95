"""
Unit tests for the position generators.
"""

import hashlib
import itertools
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from consistent_hash import ConsistentHashRing
from position_generators import FixedPositions, HashedPositions, RandomPositions


def take(iterable, count):
    return list(itertools.islice(iterable, count))


@pytest.mark.unit
class TestRandomPositions:

    def test_values_in_range(self):
        generator = RandomPositions(seed=1)
        values = take(generator("machine1", 50), 500)
        assert all(0 <= value < 50 for value in values)

    def test_seeded_stream_is_reproducible(self):
        first = take(RandomPositions(seed=42)("machine1", 2 ** 32), 20)
        second = take(RandomPositions(seed=42)("machine1", 2 ** 32), 20)
        assert first == second

    def test_seeded_stream_depends_on_machine(self):
        generator = RandomPositions(seed=42)
        assert take(generator("machine1", 2 ** 32), 20) != take(generator("machine2", 2 ** 32), 20)

    def test_seeded_stream_depends_on_seed(self):
        assert (take(RandomPositions(seed=1)("machine1", 2 ** 32), 20)
                != take(RandomPositions(seed=2)("machine1", 2 ** 32), 20))

    def test_calls_do_not_share_state(self):
        """Each add_machine call gets a fresh stream."""
        generator = RandomPositions(seed=42)
        first = take(generator("machine1", 2 ** 32), 5)
        take(generator("machine2", 2 ** 32), 100)
        assert take(generator("machine1", 2 ** 32), 5) == first


@pytest.mark.unit
class TestFixedPositions:

    def test_yields_configured_positions(self):
        generator = FixedPositions({"A": [10, 40, 70]})
        assert list(generator("A", 100)) == [10, 40, 70]

    def test_every_call_starts_over(self):
        generator = FixedPositions({"A": [10, 40, 70]})
        list(generator("A", 100))
        assert list(generator("A", 100)) == [10, 40, 70]

    def test_unknown_machine(self):
        generator = FixedPositions({"A": [10]})
        with pytest.raises(KeyError):
            generator("B", 100)

    def test_accepts_any_iterable(self):
        generator = FixedPositions({"A": (p for p in [3, 2, 1])})
        assert list(generator("A", 100)) == [3, 2, 1]
        assert list(generator("A", 100)) == [3, 2, 1]


@pytest.mark.unit
class TestHashedPositions:

    def test_matches_md5_of_virtual_key(self):
        values = take(HashedPositions()("server1", 2 ** 32), 3)
        expected = [int(hashlib.md5(f"server1:{i}".encode('utf-8')).hexdigest(), 16) % 2 ** 32
                    for i in range(3)]
        assert values == expected

    def test_placement_independent_of_ring(self):
        machines = ["server1", "server2", "server3"]
        ring_a = ConsistentHashRing(position_generator=HashedPositions(), machines=machines)
        ring_b = ConsistentHashRing(position_generator=HashedPositions(),
                                    machines=list(reversed(machines)))
        assert ring_a.virtual_positions() == ring_b.virtual_positions()

    def test_collisions_move_to_next_index(self):
        # A tiny keyspace guarantees collisions between machines
        ring = ConsistentHashRing(interval_count=50, shards_per_machine=5,
                                  position_generator=HashedPositions())
        for i in range(5):
            ring.add_machine(f"server{i}")

        positions = [position for position, _ in ring.virtual_positions()]
        assert len(positions) == 25
        assert len(set(positions)) == 25
