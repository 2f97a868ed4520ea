"""
Error taxonomy for Virtual Date.

Every external failure is caught at the boundary of the component that talks
to it and converted into one of these, so callers can degrade instead of
crashing the session.
"""


class VirtualDateError(Exception):
    """Base class for all application errors."""


class ConfigurationError(VirtualDateError):
    """A required credential or setting is missing.

    Fatal for the feature that needs it, never for the session.
    """


class ValidationError(VirtualDateError):
    """Input was malformed and rejected before any network call."""


class UpstreamError(VirtualDateError):
    """A hosted backend failed or returned unusable data."""

    def __init__(self, message: str, backend: str = "", status: int = 0):
        super().__init__(message)
        self.backend = backend
        self.status = status


class RenderError(VirtualDateError):
    """A character asset could not be loaded or applied."""

    def __init__(self, message: str, path: str = ""):
        super().__init__(message)
        self.path = path
