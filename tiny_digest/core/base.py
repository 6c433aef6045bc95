"""
Base classes and interfaces for tiny-digest stream summaries.

This module defines the abstract base classes that streaming summaries
implement so that updating, querying, merging and serialization look the same
across the library. It also provides the size and statistics hooks used for
monitoring and tuning.
"""

import abc
import json
import math
import sys
from typing import Any, Dict, Generic, Iterable, List, Optional, TypeVar, Union

T = TypeVar("T")  # Type for the items being processed
R = TypeVar("R")  # Type for the result of queries


class StreamSummary(Generic[T, R], abc.ABC):
    """
    Abstract base class for all streaming summaries.

    A summary is updated one item at a time, answers queries about the items
    seen so far, and can absorb another summary of the same type. Summaries
    are not thread-safe: a single owner must serialize every call, queries
    included.
    """

    def __init__(self, memory_limit_bytes: Optional[int] = None):
        """
        Initialize a new stream summary.

        Args:
            memory_limit_bytes: Optional soft limit on memory usage in bytes.
                                None means no explicit limit.
        """
        self._memory_limit_bytes = memory_limit_bytes
        self._items_processed = 0

    @abc.abstractmethod
    def update(self, item: T) -> None:
        """
        Update the summary with a new item from the stream.

        Subclasses call super().update(item) once the item has been accepted
        so that the processed-item counter stays accurate.

        Args:
            item: The new item to process.
        """
        self._items_processed += 1

    @abc.abstractmethod
    def query(self, *args: Any, **kwargs: Any) -> R:
        """
        Query the current state of the summary.

        The parameters and return value depend on the specific algorithm.
        """
        pass

    @abc.abstractmethod
    def merge(self, other: "StreamSummary[T, R]") -> None:
        """
        Merge another summary of the same type into this one, in place.

        Args:
            other: Another stream summary of the same type. It is not modified.

        Raises:
            TypeError: If other is not of the same type.
        """
        pass

    def _check_same_type(self, other: "StreamSummary[T, R]") -> None:
        """
        Raise TypeError unless other is an instance of this summary's class.
        """
        if not isinstance(other, self.__class__):
            raise TypeError(f"Cannot merge with {other.__class__.__name__}")

    @abc.abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the summary to a dictionary for serialization.

        Returns:
            A dictionary representation of the summary.
        """
        pass

    def _base_dict(self) -> Dict[str, Any]:
        """Attributes common to every summary's dictionary form."""
        return {
            "type": self.__class__.__name__,
            "items_processed": self._items_processed,
            "memory_limit_bytes": self._memory_limit_bytes,
        }

    @classmethod
    @abc.abstractmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StreamSummary[T, R]":
        """
        Create a summary from a dictionary representation.

        Args:
            data: The dictionary containing the summary state.

        Returns:
            A new stream summary initialized with the given state.
        """
        pass

    def serialize(self, format: str = "json") -> Union[str, bytes]:
        """
        Serialize the summary to a string or bytes.

        Args:
            format: 'json' for a str, 'binary' for UTF-8 encoded JSON bytes.

        Returns:
            The serialized representation of the summary.

        Raises:
            ValueError: If the format is not supported.
        """
        if format == "json":
            return json.dumps(self.to_dict())
        elif format == "binary":
            return json.dumps(self.to_dict()).encode("utf-8")
        else:
            raise ValueError(f"Unsupported serialization format: {format}")

    @classmethod
    def deserialize(
        cls, data: Union[str, bytes], format: str = "json"
    ) -> "StreamSummary[T, R]":
        """
        Deserialize a summary produced by serialize().

        Args:
            data: The serialized summary.
            format: The serialization format ('json' or 'binary').

        Returns:
            A new stream summary.

        Raises:
            ValueError: If the format is not supported or the payload is malformed.
        """
        if format not in ("json", "binary"):
            raise ValueError(f"Unsupported serialization format: {format}")

        if isinstance(data, bytes):
            data = data.decode("utf-8")
        try:
            payload = json.loads(data)
        except json.JSONDecodeError as e:
            raise ValueError(f"Malformed serialized summary: {e}") from e
        if not isinstance(payload, dict):
            raise ValueError("Serialized summary must decode to a JSON object")
        return cls.from_dict(payload)

    def estimate_size(self) -> int:
        """
        Estimate the current memory usage of this summary in bytes.

        The base estimate covers the object and its instance dictionary.
        Subclasses add the size of their own containers.

        Returns:
            Estimated memory usage in bytes.
        """
        size = sys.getsizeof(self)
        if hasattr(self, "__dict__"):
            size += sys.getsizeof(self.__dict__)
        return size

    def check_memory_limit(self) -> bool:
        """
        Check whether the current memory estimate is within the configured limit.

        Returns:
            True if there is no limit or the estimate is within it.
        """
        if self._memory_limit_bytes is None:
            return True

        return self.estimate_size() <= self._memory_limit_bytes

    def clear(self) -> None:
        """
        Reset the summary to its initial empty state.

        Subclasses clear their own structures and call super().clear().
        """
        self._items_processed = 0

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the current state of the summary.

        Subclasses extend the dictionary returned here with algorithm
        specific entries.

        Returns:
            A dictionary of statistics.
        """
        stats: Dict[str, Any] = {
            "type": self.__class__.__name__,
            "items_processed": self._items_processed,
            "memory_bytes": self.estimate_size(),
        }

        if self._memory_limit_bytes is not None:
            stats["memory_limit_bytes"] = self._memory_limit_bytes
            stats["memory_usage_pct"] = (
                stats["memory_bytes"] / self._memory_limit_bytes
            ) * 100

        error_bounds = self.error_bounds()
        if error_bounds:
            stats.update(error_bounds)

        return stats

    def error_bounds(self) -> Dict[str, Any]:
        """
        Get the theoretical error bounds for this summary.

        The base implementation returns an empty dictionary.
        """
        return {}

    @property
    def items_processed(self) -> int:
        """Get the total number of items processed by this summary."""
        return self._items_processed


class QuantileSummary(StreamSummary[float, float], abc.ABC):
    """
    Abstract base class for summaries that estimate quantiles of numeric streams.

    Examples include the merging t-digest.
    """

    REPORTED_QUANTILES = (0.5, 0.9, 0.99)

    @abc.abstractmethod
    def quantile(self, q: float) -> float:
        """
        Estimate the value below which a fraction q of the stream falls.

        Args:
            q: Target quantile in [0, 1].

        Returns:
            The estimated value, or NaN if the summary holds no data.
        """
        pass

    def query(self, q: float) -> float:  # type: ignore[override]
        """Alias of quantile(), for the generic StreamSummary interface."""
        return self.quantile(q)

    def quantiles(self, qs: Iterable[float]) -> List[float]:
        """
        Estimate several quantiles at once.

        Args:
            qs: Quantiles in [0, 1].

        Returns:
            The estimates, in the order requested.
        """
        return [self.quantile(q) for q in qs]

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics including a few headline percentiles.

        Returns:
            A dictionary with quantile specific statistics.
        """
        stats = super().get_stats()

        for q in self.REPORTED_QUANTILES:
            estimate = self.quantile(q)
            if not math.isnan(estimate):
                stats[f"p{q * 100:g}"] = estimate

        return stats
