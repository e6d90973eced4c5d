"""
Domain exceptions raised by service functions. Views translate them into
flash messages or HTTP errors.
"""


class AcademiaError(ValueError):
    """Base class for rule violations in the service layer."""


class NotFound(AcademiaError):
    pass


class PermissionDenied(AcademiaError):
    pass


class InvalidTransition(AcademiaError):
    """A state change that the current state does not allow."""
