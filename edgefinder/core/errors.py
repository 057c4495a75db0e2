"""Error taxonomy for the pipeline.

Components raise these exceptions internally. Boundaries (the orchestrator and
`edgefinder.api`) convert them into structured outcomes via `kind` and
`message`, so no bare exception crosses a component boundary.
"""

from __future__ import annotations


class EdgeFinderError(Exception):
    kind = "internal"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class UpstreamUnavailable(EdgeFinderError):
    """Venue API or embedding provider unreachable after retries."""

    kind = "upstream_unavailable"


class MalformedUpstreamData(EdgeFinderError):
    """A record has an unexpected shape or lacks a required field."""

    kind = "malformed_data"


class NoDataAvailable(EdgeFinderError):
    kind = "no_data"


class SnapshotNotFoundError(NoDataAvailable):
    """No shared dataset exists at all, not even an expired one."""


class ConfigurationError(EdgeFinderError):
    """Missing credentials or endpoints. Retrying will not help."""

    kind = "configuration"


class ConflictOrStaleState(EdgeFinderError):
    kind = "conflict"


def error_payload(exc: BaseException) -> dict:
    if isinstance(exc, EdgeFinderError):
        return exc.to_dict()
    return {"kind": "internal", "message": str(exc) or exc.__class__.__name__}
