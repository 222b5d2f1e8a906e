"""Synchronization package.

Row classification, table and self-reference ordering, snapshots and the
``SyncManager`` orchestrator.

Usage:
    from dataset_sync.sync import SyncManager, UpdateOrderOption, synchronize_all
"""

from dataset_sync.sync.changes import RowChanges, classify_rows, exclude_rows
from dataset_sync.sync.manager import (
    SyncManager,
    SyncState,
    UpdateOrderOption,
    synchronize_all,
)
from dataset_sync.sync.order import TableOrder
from dataset_sync.sync.self_reference import (
    SelfReferenceComparer,
    is_ancestor,
    sort_self_reference_rows,
)
from dataset_sync.sync.snapshot import restore_snapshot, take_snapshot

__all__ = [
    "RowChanges",
    "classify_rows",
    "exclude_rows",
    "SyncManager",
    "SyncState",
    "UpdateOrderOption",
    "synchronize_all",
    "TableOrder",
    "SelfReferenceComparer",
    "is_ancestor",
    "sort_self_reference_rows",
    "restore_snapshot",
    "take_snapshot",
]
