"""Tests for SchemaIntrospector and schema_from_database with mocked psycopg."""

from unittest.mock import MagicMock, patch

import pytest

from dataset_sync.schema.introspector import SchemaIntrospector
from dataset_sync.schema.loader import schema_from_database


def _introspector(*results: list[tuple]) -> tuple[SchemaIntrospector, MagicMock]:
    """Introspector whose cursor returns ``results`` from successive fetchall() calls."""
    cursor = MagicMock()
    cursor.fetchall.side_effect = list(results)
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor

    introspector = SchemaIntrospector("postgresql://localhost/test")
    introspector._conn = conn
    return introspector, cursor


TABLES = [("category",), ("incid",), ("spatial_ref_sys",)]
PRIMARY_KEYS = [("category", "id"), ("incid", "incid")]
COLUMNS = [
    ("category", "id", "integer", "NO"),
    ("category", "parent_id", "integer", "YES"),
    ("category", "label", "character varying", "YES"),
    ("incid", "incid", "text", "NO"),
    ("incid", "created", "timestamp with time zone", "YES"),
    ("spatial_ref_sys", "srid", "integer", "NO"),
]
FOREIGN_KEYS = [
    ("fk_category_parent", "category", "parent_id", "category", "id"),
    ("fk_incid_category_a", "incid", "cat_a", "category", "id"),
    ("fk_incid_category_a", "incid", "cat_b", "category", "code"),
    ("fk_srs", "incid", "srid", "spatial_ref_sys", "srid"),
]


class TestConnection:
    """Context manager behaviour."""

    def test_requires_with_statement(self) -> None:
        introspector = SchemaIntrospector("postgresql://localhost/test")
        with pytest.raises(RuntimeError, match="not connected"):
            introspector.get_column_names()

    def test_enter_appends_timeout(self) -> None:
        with patch("dataset_sync.schema.introspector.psycopg.connect") as connect:
            with SchemaIntrospector("postgresql+psycopg://localhost/test") as introspector:
                assert introspector._conn is connect.return_value
            connect.assert_called_once_with("postgresql://localhost/test?connect_timeout=10")
            connect.return_value.close.assert_called_once()

    def test_existing_query_string(self) -> None:
        with patch("dataset_sync.schema.introspector.psycopg.connect") as connect:
            with SchemaIntrospector("postgresql://localhost/test?sslmode=require"):
                pass
            connect.assert_called_once_with(
                "postgresql://localhost/test?sslmode=require&connect_timeout=10"
            )


class TestColumns:
    def test_get_column_names(self) -> None:
        introspector, cursor = _introspector(TABLES, PRIMARY_KEYS, COLUMNS)

        result = introspector.get_column_names()

        assert result == {
            "category": {"id", "parent_id", "label"},
            "incid": {"incid", "created"},
        }
        assert cursor.execute.call_args_list[0].args[1] == ("public",)

    def test_get_table_defs(self) -> None:
        introspector, _ = _introspector(TABLES, PRIMARY_KEYS, COLUMNS)

        tables = introspector.get_table_defs()

        assert [t.name for t in tables] == ["category", "incid"]
        category = tables[0]
        assert category.primary_key == ["id"]
        assert category.column("id").type == "integer"
        assert category.column("id").nullable is False
        assert category.column("label").type == "text"
        assert tables[1].column("created").type == "datetime"


class TestForeignKeys:
    def test_groups_multi_column_keys(self) -> None:
        introspector, _ = _introspector(FOREIGN_KEYS)

        relations = introspector.get_foreign_keys()

        assert [r.name for r in relations] == ["fk_category_parent", "fk_incid_category_a"]
        assert relations[0].is_self_reference
        assert relations[1].child_columns == ["cat_a", "cat_b"]
        assert relations[1].parent_columns == ["id", "code"]


class TestSchemaFromDatabase:
    def test_builds_schema(self) -> None:
        tables, _ = _introspector(TABLES, PRIMARY_KEYS, COLUMNS)
        fks, _ = _introspector(FOREIGN_KEYS[:1])

        introspector = MagicMock()
        introspector.get_table_defs.return_value = tables.get_table_defs()
        introspector.get_foreign_keys.return_value = fks.get_foreign_keys()

        schema = schema_from_database(introspector)

        assert schema.table_names == ["category", "incid"]
        assert schema.self_relation("category") is not None

    def test_drops_relations_leaving_selection(self) -> None:
        real, _ = _introspector(TABLES, PRIMARY_KEYS, COLUMNS)
        tables = real.get_table_defs()
        fk_source, _ = _introspector(
            [("fk_incid_category", "incid", "incid", "category", "id")]
        )
        relations = fk_source.get_foreign_keys()

        introspector = MagicMock()
        introspector.get_table_defs.return_value = tables
        introspector.get_foreign_keys.return_value = relations

        schema = schema_from_database(introspector, tables=["incid"])

        assert schema.table_names == ["incid"]
        assert schema.relations == []
