"""
Consistent Hashing Ring Implementation

The keyspace is a circle of ``interval_count`` integer positions. Every machine
owns ``shards_per_machine`` unique virtual positions on that circle, and a hash
value belongs to the machine owning the next position clockwise. Adding or
removing a machine only moves the keys that fall on that machine's arcs.
"""

import bisect
import hashlib
import logging
import threading
from collections import namedtuple
from typing import Any, Dict, Hashable, Iterable, List, Optional, Tuple

from position_generators import PositionGenerator, RandomPositions

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_COUNT = 2 ** 32
DEFAULT_SHARDS_PER_MACHINE = 150
DEFAULT_MAX_ATTEMPTS = 100


class RingError(Exception):
    """Base class for hash ring errors."""


class InvalidConfiguration(RingError, ValueError):
    """Raised when the ring is constructed with unusable parameters."""


class RingSaturated(RingError):
    """Raised when no free position can be found for a new machine."""


class NoMachinesAvailable(RingError, LookupError):
    """Raised when a lookup is made against a ring with no machines."""


def hash_key(key: str, interval_count: int = DEFAULT_INTERVAL_COUNT) -> int:
    """
    Map a string key onto the ring.

    Uses MD5 for consistent, well-distributed hash values, reduced
    into ``[0, interval_count)``.
    """
    return int(hashlib.md5(key.encode('utf-8')).hexdigest(), 16) % interval_count


# Immutable lookup structure. ``positions`` and ``owners`` are parallel
# tuples sorted by position; ``machines`` maps each id to its sorted positions.
_Snapshot = namedtuple('_Snapshot', ['positions', 'owners', 'machines'])

_EMPTY_SNAPSHOT = _Snapshot((), (), {})


class ConsistentHashRing:
    """
    Consistent hashing ring with a fixed number of virtual positions per machine.

    Writers (``add_machine``/``remove_machine``) are serialized by a lock and
    publish a new immutable snapshot when they finish. Readers grab the current
    snapshot once and never block, so a lookup always sees either all of a
    machine's positions or none of them.
    """

    def __init__(self,
                 interval_count: int = DEFAULT_INTERVAL_COUNT,
                 shards_per_machine: int = DEFAULT_SHARDS_PER_MACHINE,
                 position_generator: Optional[PositionGenerator] = None,
                 max_attempts: int = DEFAULT_MAX_ATTEMPTS,
                 machines: Optional[Iterable[Hashable]] = None):
        """
        Initialize the hash ring.

        Args:
            interval_count: Size of the keyspace; positions live in [0, interval_count)
            shards_per_machine: Virtual positions given to every machine
            position_generator: Strategy producing candidate positions (random by default)
            max_attempts: Candidates drawn per position before giving up
            machines: Optional machine ids to add right away
        """
        for name, value in (('interval_count', interval_count),
                            ('shards_per_machine', shards_per_machine),
                            ('max_attempts', max_attempts)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidConfiguration(
                    f"{name} must be an integer, got {value!r}")
            if value <= 0:
                raise InvalidConfiguration(
                    f"{name} must be positive, got {value}")

        self.interval_count = interval_count
        self.shards_per_machine = shards_per_machine
        self.max_attempts = max_attempts
        self.position_generator = position_generator or RandomPositions()

        self._lock = threading.Lock()
        self._owners: Dict[int, Hashable] = {}  # position -> machine_id, guarded by _lock
        self._snapshot = _EMPTY_SNAPSHOT

        if machines:
            for machine_id in machines:
                self.add_machine(machine_id)

    def add_machine(self, machine_id: Hashable) -> None:
        """
        Add a machine and give it ``shards_per_machine`` unused positions.

        Adding a machine that is already on the ring does nothing.

        Raises:
            RingSaturated: if a free position can't be found within
                ``max_attempts`` draws, or the generator runs dry. The ring
                is left exactly as it was.
        """
        with self._lock:
            if machine_id in self._snapshot.machines:
                return

            candidates = iter(self.position_generator(machine_id, self.interval_count))
            chosen = set()
            for _ in range(self.shards_per_machine):
                chosen.add(self._draw_position(machine_id, candidates, chosen))

            for position in chosen:
                self._owners[position] = machine_id
            self._publish()

        logger.info("Added machine %s with %d virtual positions",
                    machine_id, self.shards_per_machine)

    def _draw_position(self, machine_id, candidates, chosen) -> int:
        for attempt in range(1, self.max_attempts + 1):
            try:
                position = next(candidates) % self.interval_count
            except StopIteration:
                logger.warning("Position generator exhausted while adding machine %s",
                               machine_id)
                raise RingSaturated(
                    f"position generator ran out of candidates for machine {machine_id!r}")

            if position not in self._owners and position not in chosen:
                return position
            logger.debug("Position %d already taken (machine %s, attempt %d)",
                         position, machine_id, attempt)

        logger.warning("No free position for machine %s after %d attempts",
                       machine_id, self.max_attempts)
        raise RingSaturated(
            f"no free position for machine {machine_id!r} after "
            f"{self.max_attempts} attempts; ring of {self.interval_count} "
            f"intervals holds {len(self._owners)} positions")

    def remove_machine(self, machine_id: Hashable) -> None:
        """
        Remove a machine and release all of its positions.

        Keys that were mapped to it fall through to the next position
        clockwise. Removing an unknown machine does nothing.
        """
        with self._lock:
            positions = self._snapshot.machines.get(machine_id)
            if positions is None:
                return

            for position in positions:
                del self._owners[position]
            self._publish()

        logger.info("Removed machine %s", machine_id)

    def _publish(self) -> None:
        """Rebuild the lookup snapshot from ``_owners``. Caller holds the lock."""
        ordered = sorted(self._owners.items())
        machines: Dict[Hashable, List[int]] = {}
        for position, machine_id in ordered:
            machines.setdefault(machine_id, []).append(position)

        self._snapshot = _Snapshot(
            positions=tuple(position for position, _ in ordered),
            owners=tuple(machine_id for _, machine_id in ordered),
            machines={machine_id: tuple(positions)
                      for machine_id, positions in machines.items()},
        )

    def _successor_index(self, snapshot: _Snapshot, hash_value: int) -> int:
        if not snapshot.positions:
            raise NoMachinesAvailable("No machines available in hash ring")

        # bisect_left so that an exact match selects that position
        idx = bisect.bisect_left(snapshot.positions, hash_value % self.interval_count)
        if idx == len(snapshot.positions):
            # Wrap around to the beginning of the ring
            idx = 0
        return idx

    def locate(self, hash_value: int) -> Hashable:
        """
        Find which machine owns the given hash value.

        1. Reduce the hash into the keyspace
        2. Binary search for the first position clockwise (>= hash)
        3. Wrap to the smallest position if there is none
        """
        snapshot = self._snapshot
        return snapshot.owners[self._successor_index(snapshot, hash_value)]

    def locate_key(self, key: str) -> Hashable:
        """Find which machine owns a string key."""
        return self.locate(hash_key(key, self.interval_count))

    def locate_replicas(self, hash_value: int, count: int = 3) -> List[Hashable]:
        """
        Get multiple machines for replication.

        Returns the next ``count`` distinct machines clockwise from the hash
        value's position, starting with the one ``locate`` would return.
        """
        if count <= 0:
            return []

        snapshot = self._snapshot
        start = self._successor_index(snapshot, hash_value)
        total = len(snapshot.positions)

        machines = []
        seen = set()
        for i in range(total):
            machine_id = snapshot.owners[(start + i) % total]
            if machine_id not in seen:
                machines.append(machine_id)
                seen.add(machine_id)
                if len(machines) == count:
                    break

        return machines

    def machine_count(self) -> int:
        """Number of machines currently on the ring."""
        return len(self._snapshot.machines)

    @property
    def machines(self) -> frozenset:
        return frozenset(self._snapshot.machines)

    def positions_of(self, machine_id: Hashable) -> Tuple[int, ...]:
        """Sorted virtual positions owned by ``machine_id``; KeyError if absent."""
        return self._snapshot.machines[machine_id]

    def virtual_positions(self) -> List[Tuple[int, Hashable]]:
        """All (position, machine_id) pairs in ascending position order."""
        snapshot = self._snapshot
        return list(zip(snapshot.positions, snapshot.owners))

    def load_distribution(self) -> Dict[Any, float]:
        """
        Analyze how evenly keys would be distributed across machines.

        Each position owns the arc running from the previous position
        (exclusive) up to itself. Returns the percentage of the keyspace
        each machine is responsible for.
        """
        return self._distribution(self._snapshot)

    def _distribution(self, snapshot: _Snapshot) -> Dict[Any, float]:
        if not snapshot.positions:
            return {}

        if len(snapshot.positions) == 1:
            return {snapshot.owners[0]: 100.0}

        ranges: Dict[Any, int] = {}
        previous = snapshot.positions[-1]
        for position, machine_id in zip(snapshot.positions, snapshot.owners):
            ranges[machine_id] = (ranges.get(machine_id, 0)
                                  + (position - previous) % self.interval_count)
            previous = position

        return {machine_id: (size / self.interval_count) * 100
                for machine_id, size in ranges.items()}

    def __len__(self) -> int:
        return self.machine_count()

    def __contains__(self, machine_id: Hashable) -> bool:
        return machine_id in self._snapshot.machines

    def __str__(self) -> str:
        """String representation showing ring status."""
        snapshot = self._snapshot
        if not snapshot.machines:
            return "Empty hash ring"

        distribution = self._distribution(snapshot)
        lines = [f"Hash ring with {len(snapshot.machines)} machines "
                 f"({self.shards_per_machine} positions each, "
                 f"{self.interval_count} intervals):"]
        for machine_id in sorted(distribution, key=str):
            lines.append(f"  {machine_id}: {distribution[machine_id]:.2f}% of keyspace")

        return "\n".join(lines)
