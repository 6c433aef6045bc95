"""
Core functionality for tiny-digest.
"""

from tiny_digest.core.base import QuantileSummary, StreamSummary
from tiny_digest.core.errors import (
    InvalidValueError,
    QuantileOutOfRangeError,
    TinyDigestError,
)

__all__ = [
    # Base classes
    "StreamSummary",
    "QuantileSummary",
    # Errors
    "TinyDigestError",
    "InvalidValueError",
    "QuantileOutOfRangeError",
]
