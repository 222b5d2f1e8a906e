"""In-memory table: a ``TableDef`` plus its rows."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, Iterator

from dataset_sync.dataset.rows import DataRow, RowState, RowVersion
from dataset_sync.errors import RowStateError
from dataset_sync.schema.models import TableDef

if TYPE_CHECKING:
    from dataset_sync.dataset.dataset import Dataset
    from dataset_sync.schema.models import Relation


class DataTable:
    """Rows of one table held in memory.

    Rows keep insertion order.  Deleted rows stay in the table until their
    deletion is accepted.

    Args:
        table_def: Declared table structure.
        dataset: Owning dataset, used to resolve relations to other tables.
    """

    def __init__(self, table_def: TableDef, dataset: Dataset | None = None) -> None:
        self.table_def = table_def
        self.dataset = dataset
        self._rows: list[DataRow] = []

    def __repr__(self) -> str:
        return f"<DataTable {self.name} rows={len(self._rows)}>"

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[DataRow]:
        return iter(list(self._rows))

    @property
    def name(self) -> str:
        return self.table_def.name

    @property
    def column_names(self) -> list[str]:
        return self.table_def.column_names

    @property
    def rows(self) -> list[DataRow]:
        """Snapshot list of the rows (including deleted ones)."""
        return list(self._rows)

    @property
    def self_relation(self) -> Relation | None:
        """The table's self-referencing relation, if the dataset declares one."""
        if self.dataset is None:
            return None
        return self.dataset.schema.self_relation(self.name)

    # ------------------------------------------------------------------
    # Row creation
    # ------------------------------------------------------------------

    def new_row(self, **values: Any) -> DataRow:
        """Create a detached row with every column defaulting to ``None``."""
        unknown = set(values) - set(self.column_names)
        if unknown:
            raise KeyError(
                f"Table '{self.name}' has no columns: {', '.join(sorted(unknown))}"
            )
        full = {c: values.get(c) for c in self.column_names}
        return DataRow(self, full)

    def add_row(self, row: DataRow | dict[str, Any]) -> DataRow:
        """Add a row pending insert (state ADDED)."""
        if isinstance(row, dict):
            row = self.new_row(**row)
        if row.table is not self:
            raise RowStateError(f"Row belongs to table '{row.table.name}', not '{self.name}'")
        if row.state is not RowState.DETACHED:
            raise RowStateError(f"Only detached rows can be added, not {row.state.value}")
        row._state = RowState.ADDED
        row._original = None
        self._rows.append(row)
        return row

    def load_row(self, values: dict[str, Any]) -> DataRow:
        """Add a row known to match the backing store (state UNCHANGED)."""
        return self.load_rows([values])[0]

    def load_rows(self, records: Iterable[dict[str, Any]]) -> list[DataRow]:
        """Load stored records as UNCHANGED rows, merging on the primary key.

        A record whose key is already carried by a row of the table
        overwrites that row: both value sets take the stored values and the
        row becomes UNCHANGED, discarding pending edits.  Other records are
        appended.  Tables without a primary key always append.

        Returns:
            The loaded rows, one per record.
        """
        pk = self.table_def.primary_key
        index = self._key_index(pk) if pk else {}
        loaded: list[DataRow] = []
        for values in records:
            full = self.new_row(**values)._current
            existing = index.get(tuple(full[c] for c in pk)) if pk else None
            if existing is None:
                row = DataRow(self, full, state=RowState.UNCHANGED, original=full)
                self._rows.append(row)
                if pk:
                    index[tuple(full[c] for c in pk)] = row
            else:
                row = existing
                row._current = dict(full)
                row._original = dict(full)
                row._state = RowState.UNCHANGED
            loaded.append(row)
        return loaded

    def _key_index(self, pk: list[str]) -> dict[tuple, DataRow]:
        """Primary key -> row, over original values first, then current."""
        index: dict[tuple, DataRow] = {}
        for row in self._rows:
            for values in (row._original, row._current):
                if values is not None:
                    index.setdefault(tuple(values[c] for c in pk), row)
        return index

    def _attach(self, row: DataRow) -> None:
        self._rows.append(row)

    def _detach(self, row: DataRow) -> None:
        for i, r in enumerate(self._rows):
            if r is row:
                del self._rows[i]
                return

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def select(self, *states: RowState) -> list[DataRow]:
        """Rows whose state is one of ``states``, in table order."""
        return [r for r in self._rows if r.state in states]

    def has_changes(self) -> bool:
        return any(
            r.state in (RowState.ADDED, RowState.MODIFIED, RowState.DELETED)
            for r in self._rows
        )

    def find_by_key(
        self,
        columns: list[str],
        key: tuple,
        version: RowVersion = RowVersion.CURRENT,
    ) -> DataRow | None:
        """First row whose ``version`` values match ``key`` on ``columns``.

        Rows lacking that version (deleted rows for CURRENT, added rows for
        ORIGINAL) are skipped.
        """
        for r in self._rows:
            if not r.has_version(version):
                continue
            values = r._current if version is RowVersion.CURRENT else r._original
            if tuple(values[c] for c in columns) == key:
                return r
        return None

    def find(self, **key: Any) -> DataRow | None:
        """First row whose current values match every keyword."""
        return self.find_by_key(list(key), tuple(key.values()))

    def related_table(self, name: str) -> DataTable:
        """Resolve another table of the owning dataset (or this one)."""
        if name == self.name:
            return self
        if self.dataset is None:
            raise LookupError(
                f"Table '{self.name}' is not part of a dataset; cannot resolve '{name}'"
            )
        return self.dataset[name]

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    def accept_changes(self) -> None:
        for row in self.rows:
            row.accept_changes()

    def reject_changes(self) -> None:
        for row in self.rows:
            row.reject_changes()

    def clear(self) -> None:
        """Remove every row without recording deletions."""
        for row in self._rows:
            row._state = RowState.DETACHED
        self._rows = []

    def copy(self, dataset: Dataset | None = None) -> DataTable:
        """Deep copy of the table and its rows (states and both value sets)."""
        table = DataTable(self.table_def, dataset)
        for row in self._rows:
            table._attach(row._copy_to(table))
        return table

    def dump(self) -> list[dict[str, Any]]:
        return [row.dump() for row in self._rows]
