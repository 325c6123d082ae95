"""
Position generators for the hash ring.

A generator is any callable taking ``(machine_id, interval_count)`` and
returning an iterable of candidate positions. The ring calls it once per
``add_machine`` and pulls candidates until it has enough free ones, so
the iterator only lives for that one call.
"""

import hashlib
import itertools
import random
from typing import Callable, Dict, Hashable, Iterable, Iterator, Optional

PositionGenerator = Callable[[Hashable, int], Iterable[int]]


class RandomPositions:
    """
    Uniformly random positions.

    Without a seed every call draws from fresh system entropy. With a seed
    the stream is derived from the seed and the machine id, so the same
    machine lands in the same place across rings and runs.
    """

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed

    def __call__(self, machine_id: Hashable, interval_count: int) -> Iterator[int]:
        if self.seed is None:
            rng = random.Random()
        else:
            rng = random.Random(f"{self.seed}:{machine_id}")

        while True:
            yield rng.randrange(interval_count)


class FixedPositions:
    """
    Hand-picked positions per machine, mostly for tests.

    Yields exactly the listed positions for a machine and then stops, so a
    collision with an occupied position leaves the ring short and the add
    fails instead of inventing a position.
    """

    def __init__(self, positions: Dict[Hashable, Iterable[int]]):
        self.positions = {machine_id: list(values)
                          for machine_id, values in positions.items()}

    def __call__(self, machine_id: Hashable, interval_count: int) -> Iterator[int]:
        if machine_id not in self.positions:
            raise KeyError(f"No fixed positions configured for machine {machine_id!r}")
        return iter(self.positions[machine_id])


class HashedPositions:
    """
    Positions derived from MD5 of ``"{machine_id}:{i}"``.

    Placement depends only on the machine id, the same way virtual node
    keys are built for a classic hash ring. Collisions move on to the
    next ``i``.
    """

    def __call__(self, machine_id: Hashable, interval_count: int) -> Iterator[int]:
        for i in itertools.count():
            virtual_key = f"{machine_id}:{i}"
            yield int(hashlib.md5(virtual_key.encode('utf-8')).hexdigest(), 16) % interval_count
