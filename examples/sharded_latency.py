"""
Sharded latency percentiles with tiny-digest.

This example simulates several workers that each summarize their own request
latencies and ship a snapshot to an aggregator. The aggregator merges the
snapshots into a single digest and reports fleet-wide percentiles.
"""

import logging
import random

from tiny_digest import DigestSnapshot, MergingDigest


def simulate_worker(worker_id: int, requests: int, rng: random.Random) -> DigestSnapshot:
    """Record simulated latencies (ms) on one worker and return its snapshot."""
    digest = MergingDigest(compression=200)

    slow_rate = 0.01 * (worker_id + 1)
    for _ in range(requests):
        latency = rng.lognormvariate(3.0, 0.4)
        if rng.random() < slow_rate:
            latency *= 10
        digest.add(latency)

    print(
        f"  worker {worker_id}: {digest.items_processed} requests, "
        f"p99={digest.quantile(0.99):.1f}ms, {digest.centroid_count} centroids"
    )
    return digest.snapshot()


def aggregate(snapshots) -> MergingDigest:
    """Merge worker snapshots into one digest."""
    fleet = MergingDigest(compression=200, seed=0)
    for snap in snapshots:
        fleet.merge(MergingDigest.from_snapshot(snap))
    return fleet


def main():
    logging.basicConfig(level=logging.DEBUG)
    rng = random.Random(42)

    print("\n=== Per-worker digests ===")
    snapshots = [simulate_worker(i, 20000, rng) for i in range(4)]

    print("\n=== Fleet-wide percentiles ===")
    fleet = aggregate(snapshots)
    for q in (0.5, 0.9, 0.99, 0.999):
        print(f"  p{q * 100:g}: {fleet.quantile(q):.1f}ms")

    print(f"\nTotal weight: {fleet.total_weight:.0f}")
    print(f"Centroids kept: {fleet.centroid_count}")
    print(f"Approximate memory usage: {fleet.estimate_size()} bytes")

    serialized = fleet.serialize(format="json")
    print(f"Serialized size: {len(serialized)} bytes")
    restored = MergingDigest.deserialize(serialized)
    print(f"Restored p99: {restored.quantile(0.99):.1f}ms")


if __name__ == "__main__":
    main()
