"""Error types surfaced by the dashboard backend.

Each carries the HTTP status the request layer should answer with.
"""
from typing import Optional


class DashboardError(Exception):
    http_status = 500


class UpstreamError(DashboardError):
    """The Argo server (or another upstream) answered with a non-success status."""

    def __init__(self, status_code: int, message: Optional[str] = None):
        self.status_code = status_code
        super().__init__(message or f"Argo {status_code}")

    @property
    def http_status(self):
        return self.status_code


class ResolutionFailure(DashboardError):
    """No pod could be determined for a log target."""

    http_status = 400


BadTarget = ResolutionFailure


class TransportFailure(DashboardError):
    """Network failure or undecodable body from an upstream call."""

    http_status = 500
