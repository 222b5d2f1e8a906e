"""Tests for Database and SqlAlchemyTableAdapter against SQLite."""

import pytest
from sqlalchemy import Engine, Integer, Text

from dataset_sync.adapters.database import Database, create_engine_pooled, normalize_url
from dataset_sync.adapters.sqlalchemy import (
    SqlAlchemyTableAdapter,
    column_type,
    schema_to_metadata,
)
from dataset_sync.dataset import RowState
from dataset_sync.errors import ConcurrencyError, ConfigurationError, TransactionStartError
from dataset_sync.schema.models import ColumnDef, DatasetSchema, TableDef


@pytest.fixture
def parent_adapter(database, schema, metadata):
    return SqlAlchemyTableAdapter(database, schema.table("parent"), metadata)


# ============================================================================
# URL and engine helpers
# ============================================================================


class TestNormalizeUrl:
    """PostgreSQL URLs are pointed at the psycopg driver."""

    def test_postgres_alias(self) -> None:
        assert normalize_url("postgres://u:p@h/db") == "postgresql+psycopg://u:p@h/db"

    def test_postgresql(self) -> None:
        assert normalize_url("postgresql://u:p@h/db") == "postgresql+psycopg://u:p@h/db"

    def test_already_normalized(self) -> None:
        url = "postgresql+psycopg://u:p@h/db"
        assert normalize_url(url) == url

    def test_sqlite_unchanged(self) -> None:
        assert normalize_url("sqlite:///x.db") == "sqlite:///x.db"


class TestCreateEnginePooled:
    def test_sqlite_engine(self) -> None:
        engine = create_engine_pooled("sqlite://")
        assert isinstance(engine, Engine)
        with engine.connect() as conn:
            assert conn.exec_driver_sql("PRAGMA foreign_keys").scalar() == 1
        engine.dispose()

    def test_postgres_defaults(self) -> None:
        engine = create_engine_pooled("postgresql://u:p@localhost/db")
        assert engine.url.drivername == "postgresql+psycopg"
        assert engine.url.query["connect_timeout"] == "5"
        assert engine.pool.size() == 5
        engine.dispose()


class TestColumnType:
    def test_known_types(self) -> None:
        assert isinstance(column_type("integer"), Integer)
        assert isinstance(column_type("TEXT"), Text)

    def test_unknown_type(self) -> None:
        with pytest.raises(ConfigurationError, match="geometry"):
            column_type("geometry")


# ============================================================================
# Database
# ============================================================================


class TestDatabase:
    """Connection and transaction holder."""

    def test_open_close(self, database) -> None:
        assert not database.is_open
        database.open()
        assert database.is_open
        database.close()
        assert not database.is_open
        assert database.connection is None

    def test_begin_requires_open_connection(self, database) -> None:
        with pytest.raises(TransactionStartError, match="not open"):
            database.begin_transaction()

    def test_begin_twice(self, database) -> None:
        database.open()
        database.begin_transaction()
        with pytest.raises(TransactionStartError, match="already active"):
            database.begin_transaction()
        database.rollback_transaction()
        database.close()

    def test_invalid_isolation_level(self, database) -> None:
        database.open()
        with pytest.raises(TransactionStartError, match="cannot begin"):
            database.begin_transaction("READ COMMITTED")
        assert not database.in_transaction
        database.close()

    def test_isolation_level_restored_after_commit(self, database) -> None:
        conn = database.open()
        database.begin_transaction("READ UNCOMMITTED")
        assert conn.get_isolation_level() == "READ UNCOMMITTED"

        database.commit_transaction()

        assert conn.get_isolation_level() == "SERIALIZABLE"
        database.close()

    def test_isolation_level_restored_after_rollback(self, database) -> None:
        conn = database.open()
        database.begin_transaction("READ UNCOMMITTED")

        database.rollback_transaction()

        assert conn.get_isolation_level() == "SERIALIZABLE"
        database.begin_transaction()
        assert conn.get_isolation_level() == "SERIALIZABLE"
        database.rollback_transaction()
        database.close()

    def test_accepts_engine(self, database) -> None:
        other = Database(database.engine)
        assert other.engine is database.engine


# ============================================================================
# SqlAlchemyTableAdapter
# ============================================================================


class TestSchemaToMetadata:
    def test_foreign_keys_created(self, metadata) -> None:
        child = metadata.tables["child"]
        fks = {fk.target_fullname for fk in child.foreign_keys}
        assert fks == {"parent.id"}
        category = metadata.tables["category"]
        assert {fk.target_fullname for fk in category.foreign_keys} == {"category.id"}

    def test_primary_key_not_nullable(self, metadata) -> None:
        assert metadata.tables["parent"].c.id.primary_key
        assert not metadata.tables["parent"].c.id.nullable


class TestAdapterWrites:
    """Predicates come from original values, bodies from current values."""

    def test_insert_accepts_row(self, dataset, parent_adapter, stored) -> None:
        row = dataset["parent"].add_row({"id": "P1", "name": "p"})

        assert parent_adapter.insert(row) == 1
        assert row.state is RowState.UNCHANGED
        assert stored("parent") == [{"id": "P1", "name": "p"}]

    def test_insert_without_auto_accept(self, dataset, parent_adapter) -> None:
        parent_adapter.accept_changes_during_update = False
        row = dataset["parent"].add_row({"id": "P1", "name": "p"})

        parent_adapter.insert(row)

        assert row.state is RowState.ADDED

    def test_update_uses_original_key(self, dataset, parent_adapter, seed, stored) -> None:
        """Changing the key itself still finds the stored record."""
        seed("parent", {"id": "P1", "name": "p"})
        parent_adapter.fill(dataset["parent"])
        row = dataset["parent"].find(id="P1")
        row["id"] = "P2"
        row["name"] = "renamed"

        assert parent_adapter.update(row, row) == 1
        assert stored("parent") == [{"id": "P2", "name": "renamed"}]

    def test_update_missing_record_raises(self, dataset, parent_adapter) -> None:
        row = dataset["parent"].load_row({"id": "P1", "name": "p"})
        row["name"] = "q"

        with pytest.raises(ConcurrencyError) as exc_info:
            parent_adapter.update(row, row)

        assert exc_info.value.table == "parent"
        assert exc_info.value.operation == "UpdateCommand"
        assert row.state is RowState.MODIFIED

    def test_delete(self, dataset, parent_adapter, seed, stored) -> None:
        seed("parent", {"id": "P1", "name": "p"})
        parent_adapter.fill(dataset["parent"])
        row = dataset["parent"].find(id="P1")
        row.delete()

        assert parent_adapter.delete(row) == 1
        assert stored("parent") == []
        assert row.state is RowState.DETACHED

    def test_delete_missing_record_raises(self, dataset, parent_adapter) -> None:
        row = dataset["parent"].load_row({"id": "P1", "name": "p"})
        row.delete()
        with pytest.raises(ConcurrencyError, match="DeleteCommand"):
            parent_adapter.delete(row)

    def test_missing_record_tolerated_without_check(self, database, schema, metadata, dataset) -> None:
        adapter = SqlAlchemyTableAdapter(
            database, schema.table("parent"), metadata, check_concurrency=False
        )
        row = dataset["parent"].load_row({"id": "P1", "name": "p"})
        row.delete()
        assert adapter.delete(row) == 0

    def test_null_original_matched_with_is_null(self, database) -> None:
        """Tables without a primary key match on every column."""
        schema = DatasetSchema(tables=[
            TableDef(name="note", columns=[ColumnDef(name="body"), ColumnDef(name="tag")]),
        ])
        metadata = schema_to_metadata(schema)
        metadata.create_all(database.engine)
        adapter = SqlAlchemyTableAdapter(database, schema.table("note"), metadata)
        with database.engine.begin() as conn:
            conn.execute(metadata.tables["note"].insert(), [{"body": "x", "tag": None}])

        from dataset_sync.dataset import Dataset

        notes = Dataset(schema)["note"]
        adapter.fill(notes)
        row = notes.rows[0]
        row["tag"] = "t"

        assert adapter.update(row, row) == 1

    def test_writes_join_open_transaction(self, database, dataset, parent_adapter, stored) -> None:
        database.open()
        database.begin_transaction()
        parent_adapter.insert(dataset["parent"].add_row({"id": "P1", "name": "p"}))
        database.rollback_transaction()
        database.close()

        assert stored("parent") == []


class TestAdapterFill:
    def test_fill_ordered_by_key(self, dataset, parent_adapter, seed) -> None:
        seed("parent", {"id": "P2", "name": "b"}, {"id": "P1", "name": "a"})

        assert parent_adapter.fill(dataset["parent"]) == 2
        assert [r["id"] for r in dataset["parent"]] == ["P1", "P2"]
        assert all(r.state is RowState.UNCHANGED for r in dataset["parent"])

    def test_fill_where(self, dataset, parent_adapter, seed) -> None:
        seed("parent", {"id": "P1", "name": "a"}, {"id": "P2", "name": "b"})
        assert parent_adapter.fill(dataset["parent"], where={"name": "b"}) == 1
        assert dataset["parent"].rows[0]["id"] == "P2"

    def test_fill_where_groups_are_ored(self, dataset, parent_adapter, seed) -> None:
        seed(
            "parent",
            {"id": "P1", "name": "a"},
            {"id": "P2", "name": "b"},
            {"id": "P3", "name": "c"},
        )
        where = [{"name": "a"}, {"id": "P3", "name": "c"}]
        assert parent_adapter.fill(dataset["parent"], where=where) == 2
        assert [r["id"] for r in dataset["parent"]] == ["P1", "P3"]

    def test_fill_where_none_matches_null(self, dataset, parent_adapter, seed) -> None:
        seed("parent", {"id": "P1", "name": None}, {"id": "P2", "name": "b"})
        assert parent_adapter.fill(dataset["parent"], where={"name": None}) == 1
        assert dataset["parent"].rows[0]["id"] == "P1"

    def test_successive_fills_accumulate_without_duplicates(
        self, dataset, parent_adapter, seed
    ) -> None:
        """Several filtered fills into one table, clearing turned off."""
        seed("parent", {"id": "P1", "name": "a"}, {"id": "P2", "name": "b"})
        parent_adapter.clear_before_fill = False
        parent = dataset["parent"]

        parent_adapter.fill(parent, where={"name": "a"})
        parent_adapter.fill(parent, where={"name": "b"})
        parent_adapter.fill(parent, where=[{"name": "a"}, {"name": "b"}])

        assert [r["id"] for r in parent] == ["P1", "P2"]
        assert all(r.state is RowState.UNCHANGED for r in parent)

    def test_fill_clears_first(self, dataset, parent_adapter, seed) -> None:
        seed("parent", {"id": "P1", "name": "a"})
        dataset["parent"].add_row({"id": "X"})
        parent_adapter.fill(dataset["parent"])
        assert [r["id"] for r in dataset["parent"]] == ["P1"]

    def test_fill_wrong_table(self, dataset, parent_adapter) -> None:
        with pytest.raises(ConfigurationError):
            parent_adapter.fill(dataset["child"])

    def test_table_missing_from_metadata(self, database) -> None:
        from sqlalchemy import MetaData

        with pytest.raises(ConfigurationError, match="not part of the given metadata"):
            SqlAlchemyTableAdapter(database, TableDef(name="x"), MetaData())
