"""Error taxonomy shared by the core and the I/O layer.

Insufficient data is not an error: the analyzer returns an empty result and
the generator returns None.
"""


class LiquidityEngineError(Exception):
    """Base class for engine errors."""


class TransientIOError(LiquidityEngineError):
    """Network or storage failure that may succeed on retry."""


class DataIntegrityError(LiquidityEngineError):
    """Malformed or non-monotonic candle input; the batch must be rejected."""


class SignalNotFoundError(LiquidityEngineError):
    """No signal with the requested id."""


class InvalidTransitionError(LiquidityEngineError):
    """Requested lifecycle transition is not allowed from the current status."""
