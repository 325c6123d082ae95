#!/usr/bin/env python3
"""
Consistent Hashing Demo

This script walks through the hash ring end to end:
1. A small hand-placed ring where every lookup can be checked by eye
2. Key distribution across randomly placed machines
3. Minimal key movement when a machine joins or leaves
4. Replica placement and lookup performance

Usage: python src/demo.py [machine_count] [shards_per_machine] [--verbose]
"""

import logging
import random
import sys
import time
from typing import Dict, List

from consistent_hash import ConsistentHashRing, hash_key
from position_generators import FixedPositions, RandomPositions


def demo_small_ring() -> None:
    """Show lookups on a ring small enough to follow by hand."""
    print("\n🧭 Demo 1: Hand-Placed Ring")
    print("=" * 40)

    ring = ConsistentHashRing(
        interval_count=100,
        shards_per_machine=3,
        position_generator=FixedPositions({"A": [10, 40, 70], "B": [25, 55, 85]}),
        machines=["A", "B"],
    )

    for machine_id in sorted(ring.machines):
        print(f"  {machine_id}: positions {list(ring.positions_of(machine_id))}")

    print("\nLookups:")
    for hash_value in (5, 11, 41, 70, 90):
        print(f"  locate({hash_value:2}) -> {ring.locate(hash_value)}")

    print("\nRemoving B...")
    ring.remove_machine("B")
    print(f"  locate(41) -> {ring.locate(41)}")


def count_keys(ring: ConsistentHashRing, keys: List[str]) -> Dict[str, int]:
    counts = {machine_id: 0 for machine_id in ring.machines}
    for key in keys:
        counts[ring.locate_key(key)] += 1
    return counts


def demo_distribution(ring: ConsistentHashRing, keys: List[str]) -> None:
    """Show how keys and keyspace spread across machines."""
    print("\n📊 Demo 2: Key Distribution")
    print("=" * 40)

    counts = count_keys(ring, keys)
    for machine_id, count in sorted(counts.items()):
        percentage = (count / len(keys)) * 100
        bar = "█" * int(percentage / 2)
        print(f"  {machine_id:10}: {count:5} keys ({percentage:5.1f}%) {bar}")

    print()
    print(ring)


def demo_membership_change(ring: ConsistentHashRing, keys: List[str]) -> None:
    """Show that adding and removing a machine only moves a fraction of keys."""
    print("\n➕ Demo 3: Membership Changes")
    print("=" * 40)

    before = {key: ring.locate_key(key) for key in keys}
    new_machine = f"machine{ring.machine_count() + 1}"

    print(f"Adding {new_machine}...")
    ring.add_machine(new_machine)
    moved = [key for key in keys if ring.locate_key(key) != before[key]]
    expected = 100 / ring.machine_count()
    print(f"  Moved {len(moved)}/{len(keys)} keys "
          f"({len(moved) / len(keys) * 100:.1f}%, expected ~{expected:.1f}%)")
    print(f"  All moved keys now on {new_machine}: "
          f"{all(ring.locate_key(key) == new_machine for key in moved)}")

    print(f"\nRemoving {new_machine}...")
    ring.remove_machine(new_machine)
    restored = sum(1 for key in keys if ring.locate_key(key) == before[key])
    print(f"  {restored}/{len(keys)} keys back on their original machine")


def demo_replicas(ring: ConsistentHashRing) -> None:
    """Show replica placement for a few keys."""
    print("\n🛡️  Demo 4: Replica Placement")
    print("=" * 40)

    for key in ["user:123", "user:456", "session:abc", "cache:data"]:
        hash_value = hash_key(key, ring.interval_count)
        replicas = ring.locate_replicas(hash_value, 3)
        print(f"  {key:12} -> {replicas[0]:10} (replicas: {replicas})")


def demo_performance(ring: ConsistentHashRing) -> None:
    """Measure lookup throughput."""
    print("\n⚡ Demo 5: Performance")
    print("=" * 40)

    rng = random.Random(42)
    hashes = [rng.randrange(ring.interval_count) for _ in range(100000)]

    start_time = time.time()
    for hash_value in hashes:
        ring.locate(hash_value)
    duration = time.time() - start_time

    print(f"  Lookups: {len(hashes):,} in {duration:.3f} seconds")
    print(f"  Throughput: {len(hashes) / duration:,.0f} lookups/sec")

    start_time = time.time()
    ring.add_machine("benchmark")
    print(f"  Machine addition: {(time.time() - start_time) * 1000:.2f} ms")
    ring.remove_machine("benchmark")


def main():
    """
    Run the demo.

    Usage: python demo.py [machine_count] [shards_per_machine] [--verbose]
    """
    args = [arg for arg in sys.argv[1:] if arg != "--verbose"]
    if "--verbose" in sys.argv[1:]:
        logging.basicConfig(level=logging.DEBUG,
                            format="%(asctime)s %(name)s %(levelname)s %(message)s")

    machine_count = int(args[0]) if len(args) >= 1 else 3
    shards_per_machine = int(args[1]) if len(args) >= 2 else 150

    print("=== Consistent Hash Ring Demo ===")

    demo_small_ring()

    ring = ConsistentHashRing(
        shards_per_machine=shards_per_machine,
        position_generator=RandomPositions(seed=2016),
        machines=[f"machine{i}" for i in range(1, machine_count + 1)],
    )
    keys = [f"key_{i:05d}" for i in range(10000)]

    demo_distribution(ring, keys)
    demo_membership_change(ring, keys)
    demo_replicas(ring)
    demo_performance(ring)

    print("\n🎉 Demo complete!")


if __name__ == "__main__":
    main()
