"""Hierarchical multi-table synchronization.

``SyncManager`` persists every pending change of a ``Dataset``, across
all of its tables, as one atomic unit:

1. No pending changes: return 0 without opening a transaction.
2. Check the adapter registry against the dataset (``ConfigurationError``).
3. Snapshot the dataset when ``backup_before_update`` is on.
4. Open the connection if needed and begin one transaction.
5. Run the update, insert and delete passes (updates and inserts in the
   configured order, deletes always last) table by table in dependency
   order, reordering rows of self-referencing tables.
6. Commit, then accept every written row.
7. On any error: roll back, restore the snapshot (or re-mark inserted rows
   as pending) and re-raise the original error.
8. Always: close the connection if this call opened it and re-enable the
   adapters' auto-accept.

Usage:
    from dataset_sync.sync.manager import SyncManager, UpdateOrderOption

    manager = SyncManager(database, schema, adapters, backup_before_update=True)
    affected = manager.update_all(dataset)
"""

import logging
from enum import Enum

from dataset_sync.adapters.base import TableAdapter
from dataset_sync.adapters.database import Database
from dataset_sync.dataset.dataset import Dataset
from dataset_sync.dataset.rows import DataRow, RowState
from dataset_sync.dataset.table import DataTable
from dataset_sync.errors import ConfigurationError, SyncInProgressError
from dataset_sync.schema.models import DatasetSchema
from dataset_sync.sync.changes import classify_rows, exclude_rows
from dataset_sync.sync.order import TableOrder
from dataset_sync.sync.self_reference import sort_self_reference_rows
from dataset_sync.sync.snapshot import restore_snapshot, take_snapshot

logger = logging.getLogger(__name__)


class UpdateOrderOption(str, Enum):
    """Order of the insert and update passes.  Deletes always run last."""

    INSERT_UPDATE_DELETE = "insert_update_delete"
    UPDATE_INSERT_DELETE = "update_insert_delete"


class SyncState(str, Enum):
    """Lifecycle of one ``update_all()`` call."""

    IDLE = "idle"
    TRANSACTION_OPEN = "transaction_open"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class SyncManager:
    """Coordinates per-table adapters to persist a whole dataset atomically.

    The table order is computed once from ``schema`` when the manager is
    built.  Adapters are registered per table name and must all write
    through ``database``.

    ``update_all()`` is not re-entrant; callers serialize access.

    Args:
        database: Connection/transaction holder shared by all adapters.
        schema: Declared tables and relations.
        adapters: Table name -> adapter.
        update_order: Whether inserts or updates run first.
        backup_before_update: Snapshot the dataset before writing and
            restore it on failure.
        isolation_level: Transaction isolation level; ``None`` keeps the
            driver default.

    Raises:
        ConfigurationError: Missing database, unknown table, adapter bound
            to another table or database.
        SchemaCycleError: Foreign keys between tables form a cycle.
    """

    def __init__(
        self,
        database: Database,
        schema: DatasetSchema,
        adapters: dict[str, TableAdapter] | None = None,
        update_order: UpdateOrderOption = UpdateOrderOption.INSERT_UPDATE_DELETE,
        backup_before_update: bool = False,
        isolation_level: str | None = "READ COMMITTED",
    ) -> None:
        if database is None:
            raise ConfigurationError(
                "SyncManager contains no connection information. "
                "Pass the Database all table adapters write through."
            )
        self.database = database
        self.schema = schema
        self.table_order = TableOrder.from_schema(schema)
        self.update_order = UpdateOrderOption(update_order)
        self.backup_before_update = backup_before_update
        self.isolation_level = isolation_level

        self._adapters: dict[str, TableAdapter] = {}
        for name, adapter in (adapters or {}).items():
            self.register_adapter(adapter, name)

        self._state = SyncState.IDLE
        self.last_outcome: SyncState | None = None

    def __repr__(self) -> str:
        return (
            f"<SyncManager tables={len(self.table_order.insert_order)} "
            f"adapters={len(self._adapters)} state={self._state.value}>"
        )

    # ------------------------------------------------------------------
    # Adapter registry
    # ------------------------------------------------------------------

    def register_adapter(self, adapter: TableAdapter, table_name: str | None = None) -> None:
        """Add or replace the adapter for a table.

        Raises:
            ConfigurationError: Table unknown to the schema, adapter bound
                to another table or to another database.
        """
        name = table_name or adapter.table_name
        if self.schema.table(name) is None:
            raise ConfigurationError(f"Table '{name}' is not part of the schema")
        if adapter.table_name != name:
            raise ConfigurationError(
                f"Adapter for table '{adapter.table_name}' cannot be registered "
                f"for table '{name}'"
            )
        if adapter.database is not self.database:
            raise ConfigurationError(
                "All table adapters managed by a SyncManager instance "
                f"must use the same database (adapter for '{name}' does not)"
            )
        self._adapters[name] = adapter

    @property
    def adapters(self) -> dict[str, TableAdapter]:
        return dict(self._adapters)

    def adapter(self, table_name: str) -> TableAdapter:
        try:
            return self._adapters[table_name]
        except KeyError:
            raise ConfigurationError(
                f"No table adapter registered for '{table_name}'"
            ) from None

    @property
    def adapter_count(self) -> int:
        return len(self._adapters)

    @property
    def state(self) -> SyncState:
        return self._state

    # ------------------------------------------------------------------
    # Fill
    # ------------------------------------------------------------------

    def fill(
        self,
        dataset: Dataset,
        tables: list[str] | None = None,
        clear_before_fill: bool = True,
    ) -> int:
        """Load stored records into the dataset, parents first.

        Each adapter's ``clear_before_fill`` is set for the call and
        restored afterwards, also when the fill fails.

        Args:
            dataset: Dataset to fill.
            tables: Table names to fill; every table of the dataset when
                ``None``.
            clear_before_fill: Empty each table before loading it.

        Returns:
            Total number of rows loaded.
        """
        if tables is not None:
            unknown = [t for t in tables if t not in dataset]
            if unknown:
                raise ConfigurationError(
                    f"Tables not part of the dataset: {', '.join(unknown)}"
                )

        total = 0
        for name in self.table_order.insert_order:
            if name not in dataset or (tables is not None and name not in tables):
                continue
            adapter = self.adapter(name)
            previous = adapter.clear_before_fill
            try:
                adapter.clear_before_fill = clear_before_fill
                loaded = adapter.fill(dataset[name])
            finally:
                adapter.clear_before_fill = previous
            logger.debug("Filled %s with %d rows", name, loaded)
            total += loaded
        return total

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update_all(self, dataset: Dataset) -> int:
        """Persist every pending change of ``dataset`` in one transaction.

        Returns:
            Sum of affected records over every insert, update and delete
            (adapters answering ``-1`` contribute 0).

        Raises:
            ConfigurationError: Before any transaction, if a changed table
                has no adapter or is unknown to the schema.
            TransactionStartError: If the transaction cannot begin.
            SyncInProgressError: If another call is running.
            Exception: Whatever an adapter raised, after rollback and
                restore.
        """
        if dataset is None:
            raise ValueError("dataset is required")

        if not dataset.has_changes():
            return 0

        if self._state is not SyncState.IDLE:
            raise SyncInProgressError(
                f"update_all() is already running (state: {self._state.value})"
            )

        # Stays None unless a transaction opens
        self.last_outcome = None

        self._check_configuration(dataset)

        backup = take_snapshot(dataset) if self.backup_before_update else None

        opened = self._open_connection()
        try:
            self.database.begin_transaction(self.isolation_level)
        except Exception:
            if opened:
                self.database.close()
            raise
        self._state = SyncState.TRANSACTION_OPEN

        all_changed: list[DataRow] = []
        all_added: list[DataRow] = []
        suspended: list[TableAdapter] = []
        result = 0

        try:
            suspended = self._suspend_auto_accept()

            if self.update_order is UpdateOrderOption.UPDATE_INSERT_DELETE:
                result += self._update_updated_rows(dataset, all_changed, all_added)
                result += self._update_inserted_rows(dataset, all_added)
            else:
                result += self._update_inserted_rows(dataset, all_added)
                result += self._update_updated_rows(dataset, all_changed, all_added)
            result += self._update_deleted_rows(dataset, all_changed)

            self.database.commit_transaction()
            self._state = SyncState.COMMITTED

            for row in all_added:
                row.accept_changes()
            for row in all_changed:
                row.accept_changes()

            logger.info(
                "Committed %d affected records (%d inserted rows, %d updated/deleted rows)",
                result,
                len(all_added),
                len(all_changed),
            )
        except Exception as e:
            try:
                self.database.rollback_transaction()
            except Exception:
                # The write error is the one callers see.
                logger.exception("Rollback failed after %s", type(e).__name__)
            self._state = SyncState.ROLLED_BACK

            if backup is not None:
                restore_snapshot(dataset, backup)
            else:
                for row in all_added:
                    if row.state is RowState.DETACHED:
                        continue
                    row.accept_changes()
                    row.set_added()

            logger.warning(
                "Rolled back synchronization (%s: %s); dataset %s",
                type(e).__name__,
                e,
                "restored from snapshot" if backup is not None else "inserted rows left pending",
            )
            raise
        finally:
            if opened:
                self.database.close()
            for adapter in suspended:
                adapter.accept_changes_during_update = True
            self.last_outcome = self._state
            self._state = SyncState.IDLE

        return result

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    def _update_updated_rows(
        self,
        dataset: Dataset,
        all_changed: list[DataRow],
        all_added: list[DataRow],
    ) -> int:
        result = 0
        for name in self.table_order.update_order:
            if name not in dataset:
                continue
            table = dataset[name]
            rows = exclude_rows(classify_rows(table).modified, all_added)
            if not rows:
                continue
            rows = self._sort_rows(table, rows, child_first=False)
            adapter = self._adapters[name]
            logger.debug("Updating %d rows in %s", len(rows), name)
            for row in rows:
                result += _affected(adapter.update(row, row))
                all_changed.append(row)
        return result

    def _update_inserted_rows(self, dataset: Dataset, all_added: list[DataRow]) -> int:
        result = 0
        for name in self.table_order.insert_order:
            if name not in dataset:
                continue
            table = dataset[name]
            rows = classify_rows(table).added
            if not rows:
                continue
            rows = self._sort_rows(table, rows, child_first=False)
            adapter = self._adapters[name]
            logger.debug("Inserting %d rows into %s", len(rows), name)
            for row in rows:
                result += _affected(adapter.insert(row))
                all_added.append(row)
        return result

    def _update_deleted_rows(self, dataset: Dataset, all_changed: list[DataRow]) -> int:
        result = 0
        for name in self.table_order.delete_order:
            if name not in dataset:
                continue
            table = dataset[name]
            rows = classify_rows(table).deleted
            if not rows:
                continue
            rows = self._sort_rows(table, rows, child_first=True)
            adapter = self._adapters[name]
            logger.debug("Deleting %d rows from %s", len(rows), name)
            for row in rows:
                result += _affected(adapter.delete(row))
                all_changed.append(row)
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _sort_rows(self, table: DataTable, rows: list[DataRow], child_first: bool) -> list[DataRow]:
        relation = self.schema.self_relation(table.name)
        if relation is None or len(rows) < 2:
            return rows
        return sort_self_reference_rows(rows, relation, child_first)

    def _check_configuration(self, dataset: Dataset) -> None:
        for table in dataset:
            if not table.has_changes():
                continue
            if table.name not in self.table_order.insert_order:
                raise ConfigurationError(
                    f"Table '{table.name}' has changes but is not part of the schema"
                )
            if table.name not in self._adapters:
                raise ConfigurationError(
                    f"Table '{table.name}' has changes but no table adapter is registered"
                )

    def _open_connection(self) -> bool:
        """Open the database connection if it is closed or broken.

        Returns:
            ``True`` if this call opened it (and must close it).
        """
        conn = self.database.connection
        if conn is not None and conn.invalidated:
            self.database.close()
        if self.database.is_open:
            return False
        self.database.open()
        return True

    def _suspend_auto_accept(self) -> list[TableAdapter]:
        suspended: list[TableAdapter] = []
        for adapter in self._adapters.values():
            if adapter.accept_changes_during_update:
                adapter.accept_changes_during_update = False
                suspended.append(adapter)
        return suspended


def _affected(count: int) -> int:
    """Adapters answer -1 for "not applicable"; that counts as nothing."""
    return 0 if count == -1 else count


def synchronize_all(
    dataset: Dataset,
    manager: SyncManager,
    update_order: UpdateOrderOption | None = None,
    backup_before_update: bool | None = None,
) -> int:
    """Run ``manager.update_all(dataset)`` with per-call option overrides.

    The manager's own settings are restored afterwards.

    Example:
        affected = synchronize_all(
            dataset, manager,
            update_order=UpdateOrderOption.UPDATE_INSERT_DELETE,
            backup_before_update=True,
        )
    """
    previous = (manager.update_order, manager.backup_before_update)
    if update_order is not None:
        manager.update_order = UpdateOrderOption(update_order)
    if backup_before_update is not None:
        manager.backup_before_update = backup_before_update
    try:
        return manager.update_all(dataset)
    finally:
        manager.update_order, manager.backup_before_update = previous
