"""Rows of the in-memory dataset and their lifecycle.

A ``DataRow`` keeps two value sets:

- *current*: the edited values (absent once the row is deleted).
- *original*: the values last known to be persisted (absent for a row
  added since the last accept).

The ``RowState`` says which of the two exist and how the row differs from
the backing store:

    ============  =========  ==========
    state         current    original
    ============  =========  ==========
    DETACHED      yes        no
    ADDED         yes        no
    UNCHANGED     yes        yes (== current)
    MODIFIED      yes        yes
    DELETED       no         yes
    ============  =========  ==========

Usage:
    row = table.new_row(id=1, name="Woodland")
    table.add_row(row)          # ADDED
    row.accept_changes()        # UNCHANGED
    row["name"] = "Heath"       # MODIFIED, original keeps "Woodland"
    row.delete()                # DELETED, original still readable
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

from dataset_sync.errors import DeletedRowAccessError, RowStateError

if TYPE_CHECKING:
    from dataset_sync.dataset.table import DataTable
    from dataset_sync.schema.models import Relation


class RowState(str, Enum):
    """Lifecycle state of a row relative to its last persisted state."""

    UNCHANGED = "unchanged"
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    DETACHED = "detached"


class RowVersion(str, Enum):
    """Which value set of a row to read."""

    CURRENT = "current"
    ORIGINAL = "original"


class DataRow:
    """One row of a ``DataTable``.

    Rows are created through ``DataTable.new_row()`` (detached) and enter
    the table through ``DataTable.add_row()`` or ``DataTable.load_row()``.
    """

    def __init__(
        self,
        table: DataTable,
        values: dict[str, Any],
        state: RowState = RowState.DETACHED,
        original: dict[str, Any] | None = None,
    ) -> None:
        self.table = table
        self._current: dict[str, Any] | None = dict(values)
        self._original: dict[str, Any] | None = dict(original) if original is not None else None
        self._state = state
        if state is RowState.DELETED:
            self._current = None

    def __repr__(self) -> str:
        values = self._current if self._current is not None else self._original
        return f"<DataRow {self.table.name} {self._state.value} {values!r}>"

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> RowState:
        return self._state

    def has_version(self, version: RowVersion) -> bool:
        """Whether the row currently carries the given value set."""
        if version is RowVersion.CURRENT:
            return self._current is not None
        return self._original is not None

    # ------------------------------------------------------------------
    # Value access
    # ------------------------------------------------------------------

    def __getitem__(self, column: str) -> Any:
        return self.get(column)

    def __setitem__(self, column: str, value: Any) -> None:
        if self._state is RowState.DELETED:
            raise DeletedRowAccessError(
                f"Cannot set '{column}' on a deleted row of '{self.table.name}'"
            )
        self._check_column(column)
        if self._state is RowState.UNCHANGED:
            self._original = dict(self._current)
            self._state = RowState.MODIFIED
        self._current[column] = value

    def get(self, column: str, version: RowVersion = RowVersion.CURRENT) -> Any:
        """Read one column from the given value set."""
        self._check_column(column)
        return self.values(version)[column]

    def values(self, version: RowVersion = RowVersion.CURRENT) -> dict[str, Any]:
        """Return a copy of the given value set.

        Raises:
            DeletedRowAccessError: Current values of a deleted row.
            RowStateError: Original values of a row that has none.
        """
        if version is RowVersion.CURRENT:
            if self._current is None:
                raise DeletedRowAccessError(
                    f"Deleted row of '{self.table.name}' has no current values; "
                    f"read RowVersion.ORIGINAL instead"
                )
            return dict(self._current)
        if self._original is None:
            raise RowStateError(
                f"{self._state.value.capitalize()} row of '{self.table.name}' "
                f"has no original values"
            )
        return dict(self._original)

    @property
    def current(self) -> dict[str, Any]:
        return self.values(RowVersion.CURRENT)

    @property
    def original(self) -> dict[str, Any] | None:
        return dict(self._original) if self._original is not None else None

    def _check_column(self, column: str) -> None:
        if column not in self.table.column_names:
            raise KeyError(f"Table '{self.table.name}' has no column '{column}'")

    # ------------------------------------------------------------------
    # Lifecycle transitions
    # ------------------------------------------------------------------

    def accept_changes(self) -> None:
        """Make the current values the persisted ones.

        ADDED and MODIFIED rows become UNCHANGED; a DELETED row leaves its
        table and becomes DETACHED.
        """
        if self._state is RowState.DELETED:
            self.table._detach(self)
            self._state = RowState.DETACHED
            return
        if self._state in (RowState.ADDED, RowState.MODIFIED):
            self._original = dict(self._current)
            self._state = RowState.UNCHANGED

    def reject_changes(self) -> None:
        """Return the row to its last persisted values.

        MODIFIED and DELETED rows become UNCHANGED with their original
        values; an ADDED row leaves its table.
        """
        if self._state is RowState.ADDED:
            self.table._detach(self)
            self._state = RowState.DETACHED
            return
        if self._state in (RowState.MODIFIED, RowState.DELETED):
            self._current = dict(self._original)
            self._state = RowState.UNCHANGED

    def set_added(self) -> None:
        """Mark an UNCHANGED row as pending insert."""
        if self._state is not RowState.UNCHANGED:
            raise RowStateError(
                f"set_added() requires an unchanged row, not {self._state.value}"
            )
        self._original = None
        self._state = RowState.ADDED

    def set_modified(self) -> None:
        """Mark an UNCHANGED row as pending update."""
        if self._state is not RowState.UNCHANGED:
            raise RowStateError(
                f"set_modified() requires an unchanged row, not {self._state.value}"
            )
        self._state = RowState.MODIFIED

    def delete(self) -> None:
        """Delete the row.

        An ADDED row was never persisted and simply leaves its table.
        UNCHANGED and MODIFIED rows become DELETED and keep their original
        values so a delete predicate can still be built.
        """
        if self._state is RowState.ADDED:
            self.table._detach(self)
            self._state = RowState.DETACHED
        elif self._state in (RowState.UNCHANGED, RowState.MODIFIED):
            self._current = None
            self._state = RowState.DELETED
        elif self._state is RowState.DETACHED:
            raise RowStateError("Cannot delete a detached row")

    # ------------------------------------------------------------------
    # Relations
    # ------------------------------------------------------------------

    def parent_row(
        self,
        relation: Relation,
        version: RowVersion = RowVersion.CURRENT,
    ) -> DataRow | None:
        """Find this row's parent through ``relation`` in the given version.

        The child key is read from this row's ``version`` values and matched
        against the same version of the candidate parent rows.  Returns
        ``None`` when the row lacks that version, when any key column is
        null, or when no parent row matches.
        """
        if relation.child_table != self.table.name:
            raise ValueError(
                f"Relation '{relation.name}' does not have '{self.table.name}' as child"
            )
        if not self.has_version(version):
            return None

        values = self._original if version is RowVersion.ORIGINAL else self._current
        key = tuple(values[c] for c in relation.child_columns)
        if any(v is None for v in key):
            return None

        parent_table = self.table.related_table(relation.parent_table)
        return parent_table.find_by_key(relation.parent_columns, key, version)

    # ------------------------------------------------------------------
    # Copying
    # ------------------------------------------------------------------

    def _copy_to(self, table: DataTable) -> DataRow:
        """Copy values and state into a new row owned by ``table``."""
        row = DataRow(
            table,
            self._current if self._current is not None else self._original,
            state=self._state,
            original=self._original,
        )
        return row

    def dump(self) -> dict[str, Any]:
        """Serializable view of the row: state plus both value sets."""
        return {
            "state": self._state.value,
            "current": dict(self._current) if self._current is not None else None,
            "original": dict(self._original) if self._original is not None else None,
        }
