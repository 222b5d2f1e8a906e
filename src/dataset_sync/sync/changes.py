"""Row change classification.

Pure logic -- partitions a table's rows by lifecycle state.  No I/O and
no mutation.

Usage:
    from dataset_sync.sync.changes import classify_rows

    changes = classify_rows(dataset["incid"])
    for row in changes.added:
        ...
"""

from typing import NamedTuple

from dataset_sync.dataset.rows import DataRow, RowState
from dataset_sync.dataset.table import DataTable


class RowChanges(NamedTuple):
    """Pending changes of one table, each list in table order."""

    added: list[DataRow]
    modified: list[DataRow]
    deleted: list[DataRow]

    @property
    def count(self) -> int:
        return len(self.added) + len(self.modified) + len(self.deleted)


def classify_rows(table: DataTable) -> RowChanges:
    """Split a table's rows into added, modified and deleted lists.

    UNCHANGED and DETACHED rows appear in none of the lists; every other
    row appears in exactly one.

    Examples:
        >>> changes = classify_rows(table)
        >>> changes.count == len(table.select(
        ...     RowState.ADDED, RowState.MODIFIED, RowState.DELETED))
        True
    """
    added: list[DataRow] = []
    modified: list[DataRow] = []
    deleted: list[DataRow] = []

    for row in table.rows:
        if row.state is RowState.ADDED:
            added.append(row)
        elif row.state is RowState.MODIFIED:
            modified.append(row)
        elif row.state is RowState.DELETED:
            deleted.append(row)

    return RowChanges(added=added, modified=modified, deleted=deleted)


def exclude_rows(rows: list[DataRow], excluded: list[DataRow]) -> list[DataRow]:
    """Drop rows (by identity) that appear in ``excluded``.

    Used to keep rows inserted earlier in the same pass out of the update
    pass: a row with no prior persisted state cannot be updated.
    """
    if not rows or not excluded:
        return rows
    seen = {id(r) for r in excluded}
    return [r for r in rows if id(r) not in seen]
