"""
Unit tests for the StreamSummary and QuantileSummary base classes.
"""

import json
import math
import unittest

from tiny_digest.algorithms.merging_digest import MergingDigest
from tiny_digest.core.base import QuantileSummary, StreamSummary
from tiny_digest.core.errors import (
    InvalidValueError,
    QuantileOutOfRangeError,
    TinyDigestError,
)


class SortedListSummary(QuantileSummary):
    """Exact quantile summary used to exercise the base class."""

    def __init__(self, memory_limit_bytes=None):
        super().__init__(memory_limit_bytes)
        self.values = []

    def update(self, item):
        super().update(item)
        self.values.append(item)
        self.values.sort()

    def quantile(self, q):
        if not (0.0 <= q <= 1.0):
            raise QuantileOutOfRangeError(q)
        if not self.values:
            return math.nan
        return self.values[min(len(self.values) - 1, int(q * len(self.values)))]

    def merge(self, other):
        self._check_same_type(other)
        for v in other.values:
            self.update(v)

    def to_dict(self):
        state = self._base_dict()
        state["values"] = list(self.values)
        return state

    @classmethod
    def from_dict(cls, data):
        if data.get("type") != cls.__name__:
            raise ValueError("wrong type")
        instance = cls(data.get("memory_limit_bytes"))
        instance.values = list(data["values"])
        instance._items_processed = data["items_processed"]
        return instance


class TestStreamSummary(unittest.TestCase):
    """Tests for behaviour shared by every summary."""

    def test_abstract_classes_cannot_be_instantiated(self):
        with self.assertRaises(TypeError):
            StreamSummary()
        with self.assertRaises(TypeError):
            QuantileSummary()

    def test_update_counts_items(self):
        summary = SortedListSummary()
        for v in (3, 1, 2):
            summary.update(v)
        self.assertEqual(summary.items_processed, 3)

    def test_clear_resets_counter(self):
        summary = SortedListSummary()
        summary.update(1)
        summary.clear()
        self.assertEqual(summary.items_processed, 0)

    def test_merge_rejects_other_types(self):
        summary = SortedListSummary()
        with self.assertRaises(TypeError):
            summary.merge(MergingDigest())

    def test_serialize_json(self):
        summary = SortedListSummary()
        summary.update(5)
        text = summary.serialize()
        self.assertIsInstance(text, str)
        self.assertEqual(json.loads(text)["type"], "SortedListSummary")

        restored = SortedListSummary.deserialize(text)
        self.assertEqual(restored.values, [5])
        self.assertEqual(restored.items_processed, 1)

    def test_serialize_binary(self):
        summary = SortedListSummary()
        summary.update(5)
        payload = summary.serialize(format="binary")
        self.assertIsInstance(payload, bytes)
        restored = SortedListSummary.deserialize(payload, format="binary")
        self.assertEqual(restored.values, [5])

    def test_unsupported_format(self):
        summary = SortedListSummary()
        with self.assertRaises(ValueError):
            summary.serialize(format="xml")
        with self.assertRaises(ValueError):
            SortedListSummary.deserialize("{}", format="xml")

    def test_deserialize_malformed(self):
        with self.assertRaises(ValueError):
            SortedListSummary.deserialize("{not json")
        with self.assertRaises(ValueError):
            SortedListSummary.deserialize("[1, 2, 3]")

    def test_error_bounds_default_empty(self):
        self.assertEqual(SortedListSummary().error_bounds(), {})


class TestQuantileSummary(unittest.TestCase):
    """Tests for the quantile-specific helpers."""

    def test_query_delegates_to_quantile(self):
        summary = SortedListSummary()
        for v in range(10):
            summary.update(v)
        self.assertEqual(summary.query(0.5), summary.quantile(0.5))

    def test_quantiles(self):
        summary = SortedListSummary()
        for v in range(100):
            summary.update(v)
        self.assertEqual(summary.quantiles([0.0, 0.5, 0.99]), [0, 50, 99])

    def test_quantiles_on_digest(self):
        td = MergingDigest()
        td.add(4.0)
        self.assertEqual(td.quantiles([0.1, 0.9]), [4.0, 4.0])

    def test_get_stats_reports_percentiles(self):
        summary = SortedListSummary()
        for v in range(100):
            summary.update(v)
        stats = summary.get_stats()
        self.assertEqual(stats["p50"], 50)
        self.assertEqual(stats["p90"], 90)
        self.assertEqual(stats["p99"], 99)

    def test_get_stats_skips_percentiles_when_empty(self):
        stats = SortedListSummary().get_stats()
        self.assertNotIn("p50", stats)


class TestErrors(unittest.TestCase):
    """Tests for the exception hierarchy."""

    def test_hierarchy(self):
        self.assertTrue(issubclass(InvalidValueError, TinyDigestError))
        self.assertTrue(issubclass(InvalidValueError, ValueError))
        self.assertTrue(issubclass(QuantileOutOfRangeError, TinyDigestError))
        self.assertTrue(issubclass(QuantileOutOfRangeError, ValueError))

    def test_out_of_range_carries_quantile(self):
        err = QuantileOutOfRangeError(1.5)
        self.assertEqual(err.quantile, 1.5)
        self.assertIn("1.5", str(err))


if __name__ == "__main__":
    unittest.main()
