"""Exceptions raised by the classification pipeline."""


class RadarError(Exception):
    """Base class for pipeline errors."""


class ConfigurationError(RadarError):
    """A required setting (usually the classifier credential) is missing."""


class ClassificationError(RadarError):
    """The classification call failed, timed out, or returned non-conforming output."""


class NotFoundError(RadarError):
    """The datastore row targeted by an update no longer exists."""


class ConflictError(RadarError):
    """A batch run was requested while another one is active."""


class NoActiveRunError(RadarError):
    """A stop was requested but no batch run is active."""
