"""
Error taxonomy for the angular-time engine.

ConfigurationError is fatal, ProviderError propagates to the caller of the
calculator that needed the position, RateUnavailable is recoverable and only
ever degrades an ETA to "unknown".
"""


class VedicTimeError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(VedicTimeError, ValueError):
    """A division scheme or engine config is unusable (zero width, bad count...)."""


class ProviderError(VedicTimeError, RuntimeError):
    """The position provider failed or returned a non-finite longitude."""


class RateUnavailable(VedicTimeError):
    """No usable angular speed could be estimated at an instant."""
