"""
Error classes for stocky.
"""


class StockyError(Exception):
    """Base error for stocky operations."""
    pass


class PreconditionError(StockyError, ValueError):
    """Caller broke an invariant the calculations rely on."""
    pass


class MalformedTradesError(PreconditionError):
    """Trade sequence is not an alternating buy/sell sequence."""
    pass


class InvalidWindowError(PreconditionError):
    """Signal window has an odd or zero size."""
    pass


class NonAscendingTimestampsError(PreconditionError):
    """Bars are not sorted by time, ascending."""
    pass


class DataLoadError(StockyError):
    """Error while loading or storing price data."""
    pass


class ConfigError(StockyError):
    """Configuration error."""
    pass
