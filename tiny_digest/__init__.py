"""
tiny-digest - Mergeable quantile summaries for data streams

tiny-digest estimates percentiles (p50, p99, p99.9 ...) over large or unbounded
streams of weighted values with a merging t-digest, using memory bounded by a
compression parameter. Digests built on different shards or workers can be
merged into one.
"""

__version__ = "0.1.0"

# Import main classes to make them available at the top level
from tiny_digest.algorithms.merging_digest import Centroid, DigestSnapshot, MergingDigest
from tiny_digest.core.base import QuantileSummary, StreamSummary
from tiny_digest.core.errors import (
    InvalidValueError,
    QuantileOutOfRangeError,
    TinyDigestError,
)

__all__ = [
    # Core base classes
    "StreamSummary",
    "QuantileSummary",
    # Errors
    "TinyDigestError",
    "InvalidValueError",
    "QuantileOutOfRangeError",
    # Algorithm implementations
    "MergingDigest",
    "Centroid",
    "DigestSnapshot",
]
