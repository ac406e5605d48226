from __future__ import annotations


class FleetSyncError(Exception):
    """Base class for errors raised by fleet_sync."""


class PersistenceError(FleetSyncError):
    """Persisted state could not be read from or written to disk."""


class CollaboratorError(FleetSyncError):
    """The external collaborator failed to perform an action or a read."""
