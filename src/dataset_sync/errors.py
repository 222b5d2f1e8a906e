"""Exception hierarchy for dataset-sync.

Three families matter to callers of ``SyncManager.update_all()``:

- ``ConfigurationError``: the manager, schema or adapter registry is wrong.
  Raised before any transaction is opened.
- ``TransactionStartError``: the backing store refused to begin a
  transaction.  Never retried.
- Anything raised by a table adapter during the write passes propagates
  unchanged after the rollback.

Usage:
    from dataset_sync.errors import ConfigurationError, SyncError
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dataset_sync.schema.models import SchemaValidationResult


class SyncError(Exception):
    """Base class for all dataset-sync errors."""

    pass


class ConfigurationError(SyncError):
    """Raised when the manager is wired incorrectly.

    Examples: no database, a table missing from the schema, an adapter
    bound to another table or another database.
    """

    pass


class SchemaCycleError(ConfigurationError):
    """Raised when foreign keys between distinct tables form a cycle."""

    def __init__(self, tables: list[str]) -> None:
        self.tables = tables
        super().__init__(
            "Foreign keys form a cycle between tables: " + ", ".join(tables)
        )


class TransactionStartError(SyncError):
    """Raised when the backing store cannot begin a transaction."""

    pass


class SchemaConsistencyError(SyncError):
    """Raised when the live store lacks tables or columns the schema expects."""

    def __init__(self, result: SchemaValidationResult) -> None:
        self.result = result
        super().__init__(result.format_report())


class ConcurrencyError(SyncError):
    """Raised when an update or delete matched no stored record."""

    def __init__(self, table: str, operation: str, affected: int = 0) -> None:
        self.table = table
        self.operation = operation
        self.affected = affected
        super().__init__(
            f"Concurrency violation: the {operation} affected {affected} "
            f"of the expected 1 records in table '{table}'"
        )


class SyncInProgressError(SyncError):
    """Raised when ``update_all()`` is called while another call is running."""

    pass


class RowStateError(SyncError):
    """Raised when a row operation is not valid for the row's state."""

    pass


class DeletedRowAccessError(RowStateError):
    """Raised when reading current values of a deleted row."""

    pass
