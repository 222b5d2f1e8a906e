"""Shared fixtures: a three-table schema and a file-backed SQLite store.

Schema:
    parent   (id, name)
    child    (id, parent_id -> parent.id, name)
    category (id, parent_id -> category.id, name)    self-referencing

``child`` is declared before ``parent`` so the write order has to come from
the foreign keys, not from declaration order.
"""

from typing import Any, Callable

import pytest
from sqlalchemy import MetaData

from dataset_sync.adapters.database import Database
from dataset_sync.adapters.sqlalchemy import SqlAlchemyTableAdapter, schema_to_metadata
from dataset_sync.dataset import Dataset, RowVersion
from dataset_sync.schema.models import ColumnDef, DatasetSchema, Relation, TableDef
from dataset_sync.sync.manager import SyncManager


def _key() -> ColumnDef:
    return ColumnDef(name="id", type="text", nullable=False, primary_key=True)


def make_schema() -> DatasetSchema:
    return DatasetSchema(
        tables=[
            TableDef(name="child", columns=[
                _key(),
                ColumnDef(name="parent_id", type="text"),
                ColumnDef(name="name", type="text"),
            ]),
            TableDef(name="parent", columns=[
                _key(),
                ColumnDef(name="name", type="text"),
            ]),
            TableDef(name="category", columns=[
                _key(),
                ColumnDef(name="parent_id", type="text"),
                ColumnDef(name="name", type="text"),
            ]),
        ],
        relations=[
            Relation(
                name="fk_child_parent",
                parent_table="parent",
                child_table="child",
                parent_columns=["id"],
                child_columns=["parent_id"],
            ),
            Relation(
                name="fk_category_parent",
                parent_table="category",
                child_table="category",
                parent_columns=["id"],
                child_columns=["parent_id"],
            ),
        ],
    )


@pytest.fixture
def schema() -> DatasetSchema:
    return make_schema()


@pytest.fixture
def dataset(schema: DatasetSchema) -> Dataset:
    return Dataset(schema)


@pytest.fixture
def metadata(schema: DatasetSchema) -> MetaData:
    return schema_to_metadata(schema)


@pytest.fixture
def database(tmp_path, metadata: MetaData):
    """SQLite database with every table created and foreign keys enforced."""
    db = Database(f"sqlite:///{tmp_path / 'sync.db'}")
    metadata.create_all(db.engine)
    yield db
    db.dispose()


@pytest.fixture
def seed(database: Database, metadata: MetaData) -> Callable[..., None]:
    """Commit records straight into the store, bypassing the dataset."""

    def _seed(table_name: str, *records: dict[str, Any]) -> None:
        with database.engine.begin() as conn:
            conn.execute(metadata.tables[table_name].insert(), list(records))

    return _seed


@pytest.fixture
def stored(database: Database, metadata: MetaData) -> Callable[[str], list[dict[str, Any]]]:
    """Read the committed records of a table, ordered by id."""

    def _stored(table_name: str) -> list[dict[str, Any]]:
        table = metadata.tables[table_name]
        with database.engine.connect() as conn:
            rows = conn.execute(table.select().order_by(table.c.id)).mappings().all()
        return [dict(r) for r in rows]

    return _stored


class ScriptedAdapter(SqlAlchemyTableAdapter):
    """SQLAlchemy adapter that logs each write and can fail on the n-th one.

    The log is shared by every adapter of a manager, so ``fail_on`` counts
    writes across tables.
    """

    def __init__(self, *args, log: list, fail_on: int | None = None,
                 on_write: Callable[[], None] | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.log = log
        self.fail_on = fail_on
        self.on_write = on_write
        self.auto_accept_seen: list[bool] = []

    def _record(self, op: str, row_id: str) -> None:
        self.log.append((self.table_name, op, row_id))
        self.auto_accept_seen.append(self.accept_changes_during_update)
        if self.on_write is not None:
            self.on_write()
        if self.fail_on is not None and len(self.log) == self.fail_on:
            raise RuntimeError(f"write {self.fail_on} failed")

    def insert(self, row):
        self._record("insert", row["id"])
        return super().insert(row)

    def update(self, new_row, original_row):
        self._record("update", new_row["id"])
        return super().update(new_row, original_row)

    def delete(self, original_row):
        self._record("delete", original_row.get("id", RowVersion.ORIGINAL))
        return super().delete(original_row)


@pytest.fixture
def make_manager(database: Database, schema: DatasetSchema, metadata: MetaData):
    """Build a ``SyncManager`` over ``ScriptedAdapter``s.

    Returns ``(manager, log)``; ``log`` lists ``(table, op, id)`` per write.
    """

    def _make(fail_on: int | None = None, on_write=None, **options):
        log: list[tuple[str, str, str]] = []
        adapters = {
            t.name: ScriptedAdapter(
                database, t, metadata, log=log, fail_on=fail_on, on_write=on_write
            )
            for t in schema.tables
        }
        options.setdefault("isolation_level", "SERIALIZABLE")
        return SyncManager(database, schema, adapters, **options), log

    return _make
