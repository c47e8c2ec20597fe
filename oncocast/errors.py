"""Exceptions raised by the OncoCast pipeline."""


class OncoCastError(Exception):
    """Base class for all OncoCast errors."""


class ConfigurationError(OncoCastError, ValueError):
    """Invalid input detected before any resampling run starts."""


class NoOverlappingFeaturesError(OncoCastError):
    """New data shares no feature with the trained feature set."""
