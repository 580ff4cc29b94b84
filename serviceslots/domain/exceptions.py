"""
Domain-specific exception hierarchy for the service slot engine.
"""


class SchedulingError(Exception):
    """Base class for all application-level errors."""


class InputError(SchedulingError, ValueError):
    """Raised when request parameters are malformed before any rule runs."""


class InvalidTimeFormat(InputError):
    """Raised when a clock time is not a valid ``HH:MM`` string."""


class TimeOutOfRange(InputError):
    """Raised when clock-time arithmetic leaves the 00:00-23:59 day."""


class InvalidDuration(InputError):
    """Raised when a service duration is not a positive number of minutes."""


class InvalidDate(InputError):
    """Raised when a calendar date cannot be parsed."""


class AppointmentStoreError(SchedulingError):
    """Raised when appointment data cannot be fetched or parsed."""


class AppointmentNotFound(SchedulingError):
    """Raised when an appointment id is unknown to the store."""


class DirectoryError(SchedulingError):
    """Raised when vehicle or service records cannot be fetched."""


class ConfigError(SchedulingError):
    """Raised when the configuration file cannot be read or is invalid."""
