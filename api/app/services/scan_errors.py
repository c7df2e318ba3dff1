"""Error taxonomy for agent scans.

Every error raised by the scan pipeline derives from ``ScanError`` so routers
can map the whole family onto HTTP responses in one place (see ``app.main``).
"""

from __future__ import annotations


class ScanError(RuntimeError):
    """Base class for scan pipeline failures."""

    status_code = 500


class ValidationError(ScanError):
    """Malformed input (owner address, configuration) rejected before any fetch."""

    status_code = 400


class AgentNotFound(ScanError):
    status_code = 404


class UserNotFound(AgentNotFound):
    """No user row for the address; it has never been scanned."""


class ConfigurationError(ScanError):
    """Upstream endpoint or credentials missing from the environment."""

    status_code = 500


class UpstreamUnavailable(ScanError):
    """The source API could not be reached or did not answer."""

    status_code = 503

    def __init__(self, message: str = "Source API is not responding") -> None:
        super().__init__(message)


class UpstreamError(ScanError):
    """The source API answered with an error status."""

    status_code = 502

    def __init__(self, upstream_status: int, message: str = "Unknown error") -> None:
        super().__init__(f"Source API error: {upstream_status} - {message}")
        self.upstream_status = upstream_status
        self.message = message


class PersistenceConflict(ScanError):
    """Duplicate key on create. Recovered locally by the reconciler."""

    status_code = 409

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Agent already exists for record {record_id}")
        self.record_id = record_id


class PersistenceError(ScanError):
    """Any other store failure; fatal to the current scan."""

    status_code = 500
