"""In-memory dataset: one ``DataTable`` per table of a ``DatasetSchema``.

The dataset is the caller's working copy of the backing store.  Callers
edit rows freely; ``SyncManager.update_all()`` borrows the dataset for one
call, persists the pending changes and accepts them.

Usage:
    from dataset_sync.dataset import Dataset

    ds = Dataset(schema)
    ds["parent"].add_row({"id": 1, "name": "P1"})
    ds.has_changes()        # True
    backup = ds.copy()      # deep copy, row states included
"""

from __future__ import annotations

from typing import Any, Iterator

from dataset_sync.dataset.rows import DataRow
from dataset_sync.dataset.table import DataTable
from dataset_sync.schema.models import DatasetSchema


class Dataset:
    """A set of related in-memory tables.

    Args:
        schema: Declared tables and relations.  One ``DataTable`` is created
            per ``TableDef``, in declaration order.
    """

    def __init__(self, schema: DatasetSchema) -> None:
        self.schema = schema
        self._tables: dict[str, DataTable] = {
            table_def.name: DataTable(table_def, self) for table_def in schema.tables
        }

    def __repr__(self) -> str:
        return f"<Dataset tables={len(self._tables)}>"

    def __getitem__(self, name: str) -> DataTable:
        try:
            return self._tables[name]
        except KeyError:
            raise KeyError(f"Dataset has no table '{name}'") from None

    def __contains__(self, name: object) -> bool:
        return name in self._tables

    def __iter__(self) -> Iterator[DataTable]:
        return iter(self._tables.values())

    @property
    def table_names(self) -> list[str]:
        return list(self._tables)

    def has_changes(self) -> bool:
        """Whether any table has added, modified or deleted rows."""
        return any(table.has_changes() for table in self._tables.values())

    def accept_changes(self) -> None:
        for table in self._tables.values():
            table.accept_changes()

    def reject_changes(self) -> None:
        for table in self._tables.values():
            table.reject_changes()

    def clear(self) -> None:
        """Remove every row of every table without recording deletions."""
        for table in self._tables.values():
            table.clear()

    def copy(self) -> Dataset:
        """Deep copy: same schema, new row objects with identical states and values."""
        clone = Dataset.__new__(Dataset)
        clone.schema = self.schema
        clone._tables = {
            name: table.copy(clone) for name, table in self._tables.items()
        }
        return clone

    def merge(self, other: Dataset) -> None:
        """Merge the rows of ``other`` into this dataset.

        For tables with a primary key, a row of ``other`` replaces the row
        of this dataset carrying the same key (original values first, then
        current).  Every other row is appended as a copy.  Row states are
        taken from ``other``.

        Raises:
            KeyError: If ``other`` has a table this dataset lacks.
        """
        for other_table in other:
            target = self[other_table.name]
            pk = target.table_def.primary_key
            for row in other_table.rows:
                existing = _find_same_key(target, row, pk) if pk else None
                if existing is None:
                    target._attach(row._copy_to(target))
                    continue
                existing._current = dict(row._current) if row._current is not None else None
                existing._original = dict(row._original) if row._original is not None else None
                existing._state = row.state

    def dump(self) -> dict[str, list[dict[str, Any]]]:
        """Serializable view of every table (row states and both value sets)."""
        return {name: table.dump() for name, table in self._tables.items()}


def _find_same_key(table: DataTable, row: DataRow, pk: list[str]) -> DataRow | None:
    """Find the row of ``table`` that carries the same primary key as ``row``."""
    source = row._original if row._original is not None else row._current
    key = tuple(source[c] for c in pk)
    for candidate in table.rows:
        for values in (candidate._original, candidate._current):
            if values is not None and tuple(values[c] for c in pk) == key:
                return candidate
    return None
