"""
Unit tests for MergingDigest statistics and sizing hooks.
"""

import math
import random
import unittest

from tiny_digest.algorithms.merging_digest import MergingDigest, max_centroids


class TestMergingDigestBenchmarking(unittest.TestCase):
    """Test cases for MergingDigest diagnostics."""

    def test_get_stats_empty(self):
        """Test getting stats for an empty digest."""
        td = MergingDigest(compression=100)

        stats = td.get_stats()

        self.assertEqual(stats["type"], "MergingDigest")
        self.assertEqual(stats["items_processed"], 0)
        self.assertEqual(stats["compression"], 100.0)
        self.assertEqual(stats["temp_capacity"], 42)
        self.assertEqual(stats["num_centroids"], 0)
        self.assertEqual(stats["state"], "empty")

        # No data means no centroid or percentile stats
        self.assertNotIn("min_weight", stats)
        self.assertNotIn("p50", stats)

    def test_get_stats_with_data(self):
        """Test getting stats for a digest with data."""
        td = MergingDigest(compression=100)
        for i in range(1000):
            td.update(i)

        stats = td.get_stats()

        self.assertEqual(stats["total_weight"], 1000.0)
        self.assertEqual(stats["buffer_items"], 0)
        self.assertGreater(stats["num_centroids"], 0)
        self.assertEqual(stats["min_value"], 0)
        self.assertEqual(stats["max_value"], 999)

        self.assertIn("min_weight", stats)
        self.assertIn("max_weight", stats)
        self.assertIn("avg_weight", stats)
        self.assertIn("bytes_per_item", stats)

        self.assertAlmostEqual(stats["p50"], 500, delta=25)
        self.assertAlmostEqual(stats["p99"], 990, delta=10)
        self.assertIn("p90", stats)

        self.assertEqual(
            stats["centroids_lower_10pct"]
            + stats["centroids_middle_80pct"]
            + stats["centroids_upper_10pct"],
            stats["num_centroids"],
        )

    def test_centroids_concentrate_in_tails(self):
        """Tail centroids should hold less weight than the central ones."""
        td = MergingDigest(compression=100)
        rng = random.Random(7)
        for _ in range(20000):
            td.add(rng.uniform(0, 1))

        centroids = td.get_centroids()
        edge_weight = max(centroids[0][1], centroids[-1][1])
        central_weight = max(w for _, w in centroids)
        self.assertLess(edge_weight * 10, central_weight)

    def test_error_bounds(self):
        """Test error bound reporting."""
        td = MergingDigest(compression=100)

        self.assertEqual(td.error_bounds(), {"state": "empty"})

        for i in range(1000):
            td.update(i * 10)

        bounds = td.error_bounds()

        self.assertEqual(bounds["accuracy_model"], "non-uniform (higher at tails)")
        self.assertEqual(bounds["theoretical_max_centroids"], max_centroids(100))
        self.assertLessEqual(
            bounds["actual_centroids"], bounds["theoretical_max_centroids"]
        )

        error_bounds = bounds["error_bounds"]
        self.assertIn("q0.001", error_bounds)
        self.assertIn("q0.500", error_bounds)
        self.assertIn("q0.999", error_bounds)
        self.assertLess(error_bounds["q0.001"], error_bounds["q0.500"])
        self.assertLess(error_bounds["q0.999"], error_bounds["q0.500"])

    def test_estimate_size_bounded(self):
        """Memory should depend on compression, not on stream length."""
        empty_size = MergingDigest(compression=20).estimate_size()
        self.assertIsInstance(empty_size, int)
        self.assertGreater(empty_size, 50)

        sizes = []
        for n in (1000, 10000):
            td = MergingDigest(compression=20)
            for i in range(n):
                td.add(float(i))
            td.flush()
            sizes.append(td.estimate_size())

        self.assertGreater(sizes[0], empty_size)
        self.assertLess(sizes[1] / sizes[0], 3.0)

    def test_memory_limit(self):
        """Test the soft memory limit check."""
        self.assertTrue(MergingDigest().check_memory_limit())

        td = MergingDigest(memory_limit_bytes=1)
        td.add(1.0)
        self.assertFalse(td.check_memory_limit())

        stats = td.get_stats()
        self.assertEqual(stats["memory_limit_bytes"], 1)
        self.assertGreater(stats["memory_usage_pct"], 100)

        roomy = MergingDigest(memory_limit_bytes=10**9)
        roomy.add(1.0)
        self.assertTrue(roomy.check_memory_limit())

    def test_memory_limit_survives_serialization(self):
        td = MergingDigest(memory_limit_bytes=4096)
        td.add(2.0)
        restored = MergingDigest.from_dict(td.to_dict())
        self.assertEqual(restored.get_stats()["memory_limit_bytes"], 4096)

    def test_stats_do_not_change_estimates(self):
        td = MergingDigest(compression=60)
        rng = random.Random(12)
        for _ in range(3000):
            td.add(rng.gauss(0, 1))
        before = td.quantile(0.9)
        td.get_stats()
        td.error_bounds()
        self.assertEqual(td.quantile(0.9), before)
        self.assertFalse(math.isnan(before))


if __name__ == "__main__":
    unittest.main()
