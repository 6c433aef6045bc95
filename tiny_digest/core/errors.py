"""
Exception types raised by tiny-digest summaries.

Every error the library raises on purpose derives from TinyDigestError. The
argument errors also derive from ValueError, which is what callers of the
StreamSummary interface have always been told to expect for bad input.
"""


class TinyDigestError(Exception):
    """Base class for errors raised by tiny-digest."""


class InvalidValueError(TinyDigestError, ValueError):
    """
    Raised when a value or parameter cannot be accepted by a summary.

    Examples include adding NaN or an infinite value to a digest, adding a
    value with a non-positive weight, or constructing a digest with a
    non-positive compression.
    """


class QuantileOutOfRangeError(TinyDigestError, ValueError):
    """Raised when a quantile outside [0, 1] is requested."""

    def __init__(self, quantile: float):
        super().__init__(f"Quantile must be between 0.0 and 1.0, got {quantile!r}")
        self.quantile = quantile
