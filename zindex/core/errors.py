class ZIndexError(Exception):
    """Base class of every error raised by the index."""


class ConfigError(ZIndexError):
    """
    Raised at construction time when the index configuration is invalid.
    Never recovered: the index cannot be used with this configuration.
    """


class ValidationError(ZIndexError):
    """
    Raised when a caller-supplied argument is rejected before any request
    reaches the store (out-of-range limit, malformed range).
    """


class RangeInferenceError(ValidationError):
    """
    Raised when no upper bound can be derived from a bare start key.
    The caller must supply an explicit end key; the index never falls
    back to an unbounded scan.
    """


class BackendUnavailable(ZIndexError):
    """
    Raised when the backing store cannot be reached or the transport
    failed. The index performs no retries of its own.
    """


class ConsistencyRisk(UserWarning):
    """
    Advisory warning emitted when a write runs on the non-atomic path.

    In that mode the value and its index membership are written by two
    independent requests, so a partial failure or a concurrent write on
    the same key can leave one without the other.
    """
