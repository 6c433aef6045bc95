"""
Algorithm implementations for tiny-digest.
"""

from tiny_digest.algorithms.merging_digest import (
    Centroid,
    DigestSnapshot,
    MergingDigest,
    max_centroids,
    scale_index,
    temp_buffer_capacity,
)

__all__ = [
    "MergingDigest",
    "Centroid",
    "DigestSnapshot",
    "scale_index",
    "temp_buffer_capacity",
    "max_centroids",
]
