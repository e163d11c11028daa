from __future__ import annotations


class SignalBotError(Exception):
    """Base class for every error raised by the signal pipeline."""


class DataUnavailable(SignalBotError):
    """Fetch failed or the provider returned too few candles."""


class InsufficientHistory(SignalBotError):
    """Candles were fetched but not enough for an indicator window."""


class ComputationError(SignalBotError):
    """Unexpected numeric failure while computing indicators."""


class ConfigurationError(SignalBotError):
    """Invalid configuration; fatal at startup."""
