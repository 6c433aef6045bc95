# tiny_digest/algorithms/merging_digest.py

"""
Merging t-digest for quantile estimation over weighted numeric streams.

New values are staged in a small unsorted temp buffer. When the buffer fills
up, or whenever an up-to-date view is needed, the buffer is sorted and merged
with the main centroid list in a single ordered pass. During that pass each
centroid either starts a new cluster or is fused into the previous one,
depending on how far the arcsine scale function has moved since the last
cluster boundary. The scale function spends its resolution on the tails, so
extreme quantiles stay precise while the centroid count stays small.

References:
    - Dunning, T., & Ertl, O. (2019). Computing extremely accurate quantiles
      using t-digests. arXiv:1902.04023.
"""

import logging
import math
import numbers
import random
import sys
from dataclasses import dataclass
from operator import attrgetter
from typing import Any, Dict, Iterator, List, Optional, Tuple, Type, TypeVar

from tiny_digest.core.base import QuantileSummary
from tiny_digest.core.errors import InvalidValueError, QuantileOutOfRangeError

logger = logging.getLogger(__name__)

# Type variable for the class itself (for from_dict / from_snapshot)
MergingDigestType = TypeVar("MergingDigestType", bound="MergingDigest")

# Compression is clamped to this range before sizing the temp buffer.
# 925 is the vertex of the capacity quadratic.
MIN_BUFFER_COMPRESSION = 20.0
MAX_BUFFER_COMPRESSION = 925.0


class Centroid:
    """
    A cluster of nearby samples, summarized by their mean and total weight.

    Centroids are treated as immutable once created; fusing two centroids
    produces a new one.
    """

    __slots__ = ["mean", "weight"]

    def __init__(self, mean: float, weight: float = 1.0):
        self.mean = float(mean)
        self.weight = float(weight)

    def __lt__(self, other: "Centroid") -> bool:
        """Allow centroids to be sorted by mean value."""
        return self.mean < other.mean

    def __iter__(self) -> Iterator[float]:
        """Unpack as (mean, weight)."""
        yield self.mean
        yield self.weight

    def __repr__(self) -> str:
        return f"Centroid(mean={self.mean:.4g}, weight={self.weight:.4g})"

    def to_dict(self) -> Dict[str, float]:
        """Serialize the centroid to a dictionary."""
        return {"mean": self.mean, "weight": self.weight}

    @classmethod
    def from_dict(cls, data: Dict[str, float]) -> "Centroid":
        """Deserialize a centroid from a dictionary."""
        if "mean" not in data or "weight" not in data:
            raise ValueError("Centroid dictionary missing 'mean' or 'weight'")
        return cls(mean=data["mean"], weight=data["weight"])


@dataclass(frozen=True)
class DigestSnapshot:
    """
    Transferable state of a merging digest.

    Attributes:
        compression: The compression parameter of the digest.
        min: Smallest value ever added (+inf for an empty digest).
        max: Largest value ever added (-inf for an empty digest).
        centroids: (mean, weight) pairs in ascending order of mean.
    """

    compression: float
    min: float
    max: float
    centroids: Tuple[Tuple[float, float], ...] = ()

    @property
    def total_weight(self) -> float:
        """Sum of the centroid weights."""
        return math.fsum(weight for _, weight in self.centroids)


def temp_buffer_capacity(compression: float) -> int:
    """
    Number of temp centroids to accumulate before merging them into main.

    This is the buffer-sizing heuristic from Dunning's paper. The compression
    is clamped to [20, 925] first.

    Args:
        compression: The digest's compression parameter.

    Returns:
        The temp buffer capacity.
    """
    c = min(MAX_BUFFER_COMPRESSION, max(MIN_BUFFER_COMPRESSION, compression))
    return int(math.floor(7.5 + 0.37 * c - 2e-4 * c * c))


def scale_index(q: float, compression: float) -> float:
    """
    Map a cumulative weight fraction to the t-digest index space.

    k(q) = compression * (asin(2q - 1) / pi + 0.5)

    The slope of k is steepest at q=0 and q=1, so a centroid near the tails
    covers far less weight than one near the median.

    Args:
        q: Cumulative weight fraction, clamped into [0, 1].
        compression: The digest's compression parameter.

    Returns:
        The index in [0, compression].
    """
    # running weight sums can overshoot 1.0 by an ulp
    q = min(1.0, max(0.0, q))
    return compression * (math.asin(2.0 * q - 1.0) / math.pi + 0.5)


def max_centroids(compression: float) -> int:
    """Upper bound on the number of merged centroids for a compression."""
    return 2 * int(math.ceil(compression)) + 2


def _check_value(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidValueError(
            f"{name} must be a real number, got {type(value).__name__}"
        )
    try:
        converted = float(value)
    except OverflowError:
        raise InvalidValueError(f"{name} is too large to be a float") from None
    if not math.isfinite(converted):
        raise InvalidValueError(f"{name} must be finite, got {value!r}")
    return converted


class MergingDigest(QuantileSummary):
    """
    Merging t-digest (Dunning & Ertl) with an arcsine scale function.

    Key properties:

    1. Memory is bounded by the compression parameter, not by the stream length
    2. Accuracy is highest at the tails (p1, p99, p99.9) and lowest at the median
    3. Values may carry arbitrary positive weights
    4. Digests built on different shards can be merged into one

    A digest has a single owner. It holds no locks, and quantile() and
    snapshot() both flush the temp buffer, so every call on an instance must
    be serialized, reads included. merge() needs exclusive access to both
    digests for its duration.
    """

    DEFAULT_COMPRESSION: float = 100.0

    def __init__(
        self,
        compression: float = DEFAULT_COMPRESSION,
        memory_limit_bytes: Optional[int] = None,
        seed: Optional[int] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize an empty merging digest.

        Args:
            compression: Trades memory for accuracy. Values from 20 to 1000
                are recommended; anything above 0 is accepted.
                Default: 100.
            memory_limit_bytes: Optional soft memory limit, see
                check_memory_limit().
            seed: Seed for the random source that orders merge() replays.
            rng: Random source to use instead of one built from seed.

        Raises:
            InvalidValueError: If compression is not a finite number above 0.
        """
        super().__init__(memory_limit_bytes)

        compression = _check_value(compression, "Compression")
        if compression <= 0:
            raise InvalidValueError(
                f"Compression must be greater than 0, got {compression}"
            )

        self.compression: float = compression
        self._temp_capacity: int = temp_buffer_capacity(compression)
        self._random = rng if rng is not None else random.Random(seed)

        self._main: List[Centroid] = []
        self._main_weight: float = 0.0
        self._temp: List[Centroid] = []
        self._temp_weight: float = 0.0
        self._min: float = math.inf
        self._max: float = -math.inf

    @classmethod
    def from_snapshot(
        cls: Type[MergingDigestType],
        snapshot: Any,
        seed: Optional[int] = None,
        rng: Optional[random.Random] = None,
    ) -> MergingDigestType:
        """
        Rebuild a digest from a snapshot.

        Any object with compression, min, max and centroids attributes is
        accepted; centroid entries may be (mean, weight) pairs or Centroid
        instances. The centroids are taken as given: they must already be in
        ascending order of mean and consistent with min and max. The total
        weight is recomputed from them.

        Args:
            snapshot: The state to restore, typically from snapshot().
            seed: Seed for the new digest's merge() random source.
            rng: Random source to use instead of one built from seed.

        Returns:
            A digest with an empty temp buffer and the snapshot's centroids.
        """
        digest = cls(compression=snapshot.compression, seed=seed, rng=rng)
        digest._main = [Centroid(mean, weight) for mean, weight in snapshot.centroids]
        digest._main_weight = math.fsum(c.weight for c in digest._main)
        digest._min = float(snapshot.min)
        digest._max = float(snapshot.max)

        logger.debug(
            "Restored digest with %d centroids (weight %g)",
            len(digest._main),
            digest._main_weight,
        )
        return digest

    def update(self, item: float) -> None:
        """
        Add a value with weight 1.

        Args:
            item: A finite real number.

        Raises:
            InvalidValueError: If item is NaN, infinite or not a number.
        """
        self.add(item)

    def add(self, value: float, weight: float = 1.0) -> None:
        """
        Add a weighted value to the digest.

        The value is staged in the temp buffer; a full buffer is merged into
        the main centroid list before the value is staged.

        Args:
            value: A finite real number.
            weight: A finite weight greater than 0. Default: 1.

        Raises:
            InvalidValueError: If value is NaN, infinite or not a number, or
                if weight is not a finite number greater than 0. The digest
                is left unchanged.
        """
        value = _check_value(value, "Value")
        weight = _check_value(weight, "Weight")
        if weight <= 0:
            raise InvalidValueError(f"Weight must be greater than 0, got {weight}")

        super().update(value)
        self._add_centroid(value, weight)

    def _add_centroid(self, value: float, weight: float) -> None:
        if len(self._temp) >= self._temp_capacity:
            self.flush()

        if value < self._min:
            self._min = value
        if value > self._max:
            self._max = value

        self._temp.append(Centroid(value, weight))
        self._temp_weight += weight

    def flush(self) -> None:
        """
        Merge the temp buffer into the main centroid list.

        Sorts the buffer, then walks it and the main list together in order
        of mean, feeding every centroid through _merge_one() into a fresh
        list. Does nothing when the buffer is empty.
        """
        # merging an empty buffer would still re-merge main into itself
        if not self._temp:
            return

        temp = self._temp
        temp.sort(key=attrgetter("mean"))
        main = self._main

        total_weight = self._main_weight + self._temp_weight
        merged: List[Centroid] = []
        merged_weight = 0.0
        last_index = 0.0

        i = j = 0
        while i < len(main) or j < len(temp):
            # on equal means the temp centroid goes first
            if i < len(main) and (j == len(temp) or main[i].mean < temp[j].mean):
                candidate = main[i]
                i += 1
            else:
                candidate = temp[j]
                j += 1

            last_index = self._merge_one(
                merged, merged_weight, total_weight, last_index, candidate
            )
            merged_weight += candidate.weight

        logger.debug(
            "Merged %d temp centroids into %d main centroids -> %d",
            len(temp),
            len(main),
            len(merged),
        )

        self._main = merged
        self._main_weight = total_weight
        self._temp = []
        self._temp_weight = 0.0

    def _merge_one(
        self,
        merged: List[Centroid],
        before_weight: float,
        total_weight: float,
        before_index: float,
        candidate: Centroid,
    ) -> float:
        """
        Append candidate to merged, or fuse it into the last centroid there.

        Args:
            merged: Output list being built by flush().
            before_weight: Weight already merged ahead of candidate.
            total_weight: Weight the digest will hold once the flush is done.
            before_index: Scale index of the current cluster's left boundary.
            candidate: The centroid to merge.

        Returns:
            The scale index of the left boundary of the last cluster in merged.
        """
        next_index = scale_index(
            (before_weight + candidate.weight) / total_weight, self.compression
        )

        if next_index - before_index > 1 or not merged:
            # fusing would make the current cluster span more than one index
            merged.append(candidate)
            return scale_index(before_weight / total_weight, self.compression)

        # incremental weighted mean; weight is updated before the mean
        last = merged[-1]
        weight = last.weight + candidate.weight
        mean = last.mean + (candidate.mean - last.mean) * candidate.weight / weight
        merged[-1] = Centroid(mean, weight)
        return before_index

    def quantile(self, q: float) -> float:
        """
        Estimate the value below which a fraction q of the total weight falls.

        Each centroid is assumed to spread its weight uniformly between the
        midpoints to its neighbours (the tracked min and max at the ends).

        Args:
            q: Target quantile in [0, 1].

        Returns:
            The estimated value, or NaN if the digest is empty.

        Raises:
            QuantileOutOfRangeError: If q is outside [0, 1] or NaN.
        """
        if not (0.0 <= q <= 1.0):
            raise QuantileOutOfRangeError(q)

        self.flush()

        if self._main_weight == 0:
            return math.nan

        target = q * self._main_weight
        weight_so_far = 0.0
        lower_bound = self._min
        last = len(self._main) - 1

        for i, c in enumerate(self._main):
            if i == last:
                upper_bound = self._max
            else:
                upper_bound = (c.mean + self._main[i + 1].mean) / 2

            if target <= weight_so_far + c.weight:
                proportion = (target - weight_so_far) / c.weight
                return lower_bound + proportion * (upper_bound - lower_bound)

            weight_so_far += c.weight
            lower_bound = upper_bound

        # only reachable when rounding leaves the summed weights short of target
        return self._max

    def merge(self, other: "MergingDigest") -> None:
        """
        Merge another digest into this one.

        Other's main centroids are replayed through add() in a shuffled order
        so that the fuse decisions do not favour one end of the distribution;
        its temp centroids follow in their existing order. Other is not
        modified. The shuffle uses this digest's random source.

        Args:
            other: Another MergingDigest. Its compression may differ; its
                centroids are re-clustered under this digest's compression.

        Raises:
            TypeError: If other is not a MergingDigest.
        """
        self._check_same_type(other)

        # copies, so that merging a digest into itself is well defined
        main = list(other._main)
        temp = list(other._temp)
        items = other._items_processed

        order = list(range(len(main)))
        self._random.shuffle(order)

        for idx in order:
            c = main[idx]
            self._add_centroid(c.mean, c.weight)
        for c in temp:
            self._add_centroid(c.mean, c.weight)

        self._items_processed += items

        logger.debug(
            "Replayed %d main and %d temp centroids from %s",
            len(main),
            len(temp),
            other.__class__.__name__,
        )

    def snapshot(self) -> DigestSnapshot:
        """
        Flush and capture the digest's transferable state.

        Returns:
            A DigestSnapshot that from_snapshot() can restore.
        """
        self.flush()
        return DigestSnapshot(
            compression=self.compression,
            min=self._min,
            max=self._max,
            centroids=tuple((c.mean, c.weight) for c in self._main),
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize the digest to a dictionary.

        Flushes first. Empty digests carry min=inf and max=-inf, which the
        json module writes as Infinity and -Infinity.

        Returns:
            Dictionary containing the configuration and merged state.
        """
        snap = self.snapshot()

        state = self._base_dict()
        state.update(
            {
                "compression": snap.compression,
                "min": snap.min,
                "max": snap.max,
                "centroids": [{"mean": m, "weight": w} for m, w in snap.centroids],
            }
        )
        return state

    @classmethod
    def from_dict(
        cls: Type[MergingDigestType], data: Dict[str, Any]
    ) -> MergingDigestType:
        """
        Deserialize a digest from a dictionary created by to_dict().

        Args:
            data: Dictionary representation of the digest.

        Returns:
            A reconstructed digest.

        Raises:
            ValueError: If the dictionary is missing keys, has the wrong type
                tag, or contains malformed centroids.
        """
        if "type" not in data:
            raise ValueError("Invalid dictionary format for MergingDigest. Missing 'type'")

        if data.get("type") != cls.__name__:
            raise ValueError(
                f"Dictionary represents class '{data.get('type')}' but expected '{cls.__name__}'"
            )

        required_keys = {"compression", "min", "max", "centroids", "items_processed"}
        missing_keys = required_keys - data.keys()
        if missing_keys:
            raise ValueError(
                f"Invalid dictionary format for MergingDigest. Missing keys: {missing_keys}"
            )

        try:
            centroids = tuple(
                tuple(Centroid.from_dict(c_data)) for c_data in data["centroids"]
            )
        except (TypeError, ValueError) as e:
            raise ValueError(f"Error deserializing centroids: {e}") from e

        snap = DigestSnapshot(
            compression=data["compression"],
            min=data["min"],
            max=data["max"],
            centroids=centroids,
        )
        instance = cls.from_snapshot(snap)
        instance._items_processed = data["items_processed"]
        instance._memory_limit_bytes = data.get("memory_limit_bytes")
        return instance

    @property
    def total_weight(self) -> float:
        """Total weight added so far, merged or still buffered."""
        return self._main_weight + self._temp_weight

    @property
    def min(self) -> float:
        """Smallest value added so far (+inf if empty)."""
        return self._min

    @property
    def max(self) -> float:
        """Largest value added so far (-inf if empty)."""
        return self._max

    @property
    def temp_capacity(self) -> int:
        """Number of buffered centroids that triggers an automatic flush."""
        return self._temp_capacity

    @property
    def centroid_count(self) -> int:
        """Number of centroids in the main list, after a flush."""
        self.flush()
        return len(self._main)

    @property
    def is_empty(self) -> bool:
        """Check if the digest holds any weight."""
        return self.total_weight == 0

    def __len__(self) -> int:
        """Return the number of values added to the digest."""
        return self.items_processed

    def __bool__(self) -> bool:
        """A digest is truthy when it holds weight, even if restored."""
        return not self.is_empty

    def get_centroids(self) -> List[Tuple[float, float]]:
        """
        Return the merged centroids as (mean, weight) tuples.

        Returns:
            Centroids in ascending order of mean.
        """
        self.flush()
        return [(c.mean, c.weight) for c in self._main]

    def estimate_size(self) -> int:
        """
        Estimate the memory footprint of the digest in bytes.

        Returns:
            Estimated size in bytes.
        """
        size = super().estimate_size()

        size += sys.getsizeof(self._main) + sys.getsizeof(self._temp)
        centroid_size = sys.getsizeof(Centroid(0.0)) + 2 * sys.getsizeof(0.0)
        size += (len(self._main) + len(self._temp)) * centroid_size

        return size

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the digest's structure.

        Returns:
            A dictionary with the configuration, centroid counts, weight
            statistics and how many centroids sit in the tails.
        """
        self.flush()

        stats = super().get_stats()
        stats.update(
            {
                "compression": self.compression,
                "temp_capacity": self._temp_capacity,
                "total_weight": self.total_weight,
                "num_centroids": len(self._main),
                "buffer_items": len(self._temp),
            }
        )

        if not self._main:
            return stats

        stats["min_value"] = self._min
        stats["max_value"] = self._max

        weights = [c.weight for c in self._main]
        stats.update(
            {
                "min_weight": min(weights),
                "max_weight": max(weights),
                "avg_weight": sum(weights) / len(weights),
            }
        )

        # the scale function should leave the tails with the narrowest centroids
        span = self._max - self._min
        if span > 0:
            lower_tail = sum(1 for c in self._main if c.mean < self._min + 0.1 * span)
            upper_tail = sum(1 for c in self._main if c.mean > self._max - 0.1 * span)
            middle = len(self._main) - lower_tail - upper_tail
            stats.update(
                {
                    "centroids_lower_10pct": lower_tail,
                    "centroids_middle_80pct": middle,
                    "centroids_upper_10pct": upper_tail,
                }
            )

        if self.items_processed > 0:
            stats["bytes_per_item"] = self.estimate_size() / self.items_processed

        return stats

    def error_bounds(self) -> Dict[str, Any]:
        """
        Describe the expected error of the digest.

        Error at quantile q is roughly proportional to q(1-q)/compression,
        so it shrinks towards the tails.

        Returns:
            A dictionary with the error model and per-quantile estimates, or
            {"state": "empty"} for an empty digest.
        """
        self.flush()

        if self.is_empty:
            return {"state": "empty"}

        c = self.compression
        bounds: Dict[str, Any] = {
            "accuracy_model": "non-uniform (higher at tails)",
            # every two consecutive clusters span more than one index unit
            "theoretical_max_centroids": max_centroids(c),
            "actual_centroids": len(self._main),
        }

        bounds["error_bounds"] = {
            f"q{q:.3f}": q * (1 - q) / c
            for q in (0.001, 0.01, 0.05, 0.25, 0.5, 0.75, 0.95, 0.99, 0.999)
        }
        return bounds

    def clear(self) -> None:
        """Reset the digest to its empty state, keeping its configuration."""
        super().clear()
        self._main = []
        self._main_weight = 0.0
        self._temp = []
        self._temp_weight = 0.0
        self._min = math.inf
        self._max = -math.inf
