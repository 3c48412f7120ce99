"""
Exception taxonomy. Access denials are not exceptions; see models.Denial.
"""


class DashboardCoreError(Exception):
    """Base class for every error raised by dashboard_core."""


class ValidationError(DashboardCoreError, ValueError):
    """Malformed caller input; the operation was not attempted."""


class SelfShareRejected(ValidationError):
    """A user tried to share a dashboard with themself."""


class DuplicateKey(ValidationError):
    """A dashboard key already exists in the static catalog or the store."""


class NotFound(DashboardCoreError, LookupError):
    """Dashboard key or exact share tuple does not exist."""


class UpstreamUnavailable(DashboardCoreError):
    """An external collaborator failed or timed out."""
