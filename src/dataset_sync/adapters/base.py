"""Table adapter protocol definition.

Defines the ``TableAdapter`` Protocol that every per-table adapter must
implement.  One adapter persists the rows of exactly one table; the
``SyncManager`` holds one adapter per table in a registry keyed by table
name.

All methods are synchronous -- each call is one blocking round trip to the
backing store.

Usage:
    from dataset_sync.adapters.base import TableAdapter

    def persist(adapter: TableAdapter, row: DataRow) -> int:
        if row.state is RowState.ADDED:
            return adapter.insert(row)
        return adapter.update(row, row)
"""

from typing import Any, Protocol

from dataset_sync.adapters.database import Database
from dataset_sync.dataset.rows import DataRow
from dataset_sync.dataset.table import DataTable


class TableAdapter(Protocol):
    """Per-table persistence interface consumed by ``SyncManager``.

    Predicates identifying the stored record are always built from the
    row's *original* values; insert and update bodies from its *current*
    values, with ``None`` written as NULL.

    A single call either writes its row completely or raises; atomicity
    across rows is the caller's responsibility.

    Attributes:
        table_name: Name of the table this adapter persists.
        database: The ``Database`` whose connection and transaction the
            adapter writes through.
        clear_before_fill: Whether ``fill()`` empties the table first.
        accept_changes_during_update: Whether a successful write accepts
            the row's changes immediately.  ``SyncManager`` switches this
            off for the duration of a synchronization so rows are only
            accepted after commit.
    """

    table_name: str
    database: Database
    clear_before_fill: bool
    accept_changes_during_update: bool

    def insert(self, row: DataRow) -> int:
        """Insert the row's current values.

        Returns:
            Number of affected records, or ``-1`` if not applicable.
        """
        ...

    def update(self, new_row: DataRow, original_row: DataRow) -> int:
        """Write ``new_row``'s current values over the record matching
        ``original_row``'s original values.

        ``SyncManager`` passes the same row object for both arguments.

        Returns:
            Number of affected records, or ``-1`` if not applicable.
        """
        ...

    def delete(self, original_row: DataRow) -> int:
        """Delete the record matching ``original_row``'s original values.

        Returns:
            Number of affected records, or ``-1`` if not applicable.
        """
        ...

    def fill(
        self,
        table: DataTable,
        where: dict[str, Any] | list[dict[str, Any]] | None = None,
    ) -> int:
        """Load stored records into ``table`` as UNCHANGED rows.

        Args:
            table: In-memory table to fill.
            where: Optional ``{column: value}`` filters (all must match),
                or a list of such groups (any group may match).  Records
                whose primary key is already in ``table`` replace that row.

        Returns:
            Number of rows loaded.
        """
        ...
