# Exception taxonomy for the sync engine.
# Every failure is handled at the boundary where it occurs (group task or
# cycle); only StartupError ends the process.

from typing import Optional


class SyncError(Exception):
    """Base class for all sync engine errors."""


class StartupError(SyncError):
    """Required process configuration is missing or invalid."""


class ConfigurationError(SyncError):
    """The configuration service returned an error or a malformed payload."""


class ConfigurationUnavailableError(ConfigurationError):
    """The configuration backend answered with something that is not structured
    data (typically an HTML error page while it restarts)."""


class AdapterError(SyncError):
    """A vendor adapter could not fetch events for a tenant group."""

    def __init__(self, message: str, groupName: Optional[str] = None):
        super().__init__(message)
        self.groupName = groupName


class AdapterAuthError(AdapterError):
    """Authentication or session setup against the vendor failed."""


class AdapterFetchError(AdapterError):
    """The vendor API failed while events were being fetched."""


class ForwardError(SyncError):
    """A batch could not be delivered to the ingestion endpoint."""


class ConnectivityError(SyncError):
    """The vendor reachability probe failed."""
