"""Synchronization of module working copies."""
from gitmods.sync.engine import SyncEngine, SyncState, compute_state
from gitmods.sync.export import export_project
from gitmods.sync.status import collect_status
from gitmods.sync.update import UpdateOptions, UpdateResult, update

__all__ = [
    "SyncEngine",
    "SyncState",
    "UpdateOptions",
    "UpdateResult",
    "collect_status",
    "compute_state",
    "export_project",
    "update",
]
