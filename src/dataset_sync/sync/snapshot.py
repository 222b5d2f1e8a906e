"""Snapshot and restore of an in-memory dataset.

A snapshot is a deep copy of the whole dataset -- every table, every row,
each row's state and both of its value sets.  ``SyncManager`` takes one
before a synchronization attempt when ``backup_before_update`` is on and
restores it if the attempt fails.

Usage:
    from dataset_sync.sync.snapshot import restore_snapshot, take_snapshot

    snapshot = take_snapshot(dataset)
    try:
        ...
    except Exception:
        restore_snapshot(dataset, snapshot)
        raise
"""

from dataset_sync.dataset.dataset import Dataset


def take_snapshot(dataset: Dataset) -> Dataset:
    """Return a deep copy of ``dataset`` that shares no row objects with it."""
    return dataset.copy()


def restore_snapshot(dataset: Dataset, snapshot: Dataset) -> None:
    """Replace the contents of ``dataset`` with those of ``snapshot``.

    Everything in ``dataset`` is dropped first, including rows added or
    removed after the snapshot was taken.  Row objects held by the caller
    before the restore are detached afterwards; look rows up again.
    """
    dataset.clear()
    dataset.merge(snapshot)
