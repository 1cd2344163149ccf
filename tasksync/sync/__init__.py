"""Session synchronization: graph store, reconciliation, actions, orchestration."""

from tasksync.sync.actions import ActionGateway
from tasksync.sync.reconciler import (
    SnapshotReconciler,
    derive_snapshot_state,
    merge_artifacts,
)
from tasksync.sync.session import SessionSync
from tasksync.sync.store import GraphListener, GraphStore

__all__ = [
    "ActionGateway",
    "GraphListener",
    "GraphStore",
    "SessionSync",
    "SnapshotReconciler",
    "derive_snapshot_state",
    "merge_artifacts",
]
