"""PostgreSQL schema introspection via information_schema.

Reads what ``dataset-sync`` needs from a live database:
- Column names per table (for ``validate_schema``)
- Columns with types, nullability and primary-key membership
- Foreign keys, including multi-column and self-referencing ones

Uses psycopg (v3) for PostgreSQL connections.
"""

import psycopg
from psycopg import Connection

from dataset_sync.schema.models import ColumnDef, Relation, TableDef


class SchemaIntrospector:
    """Introspects a PostgreSQL database schema.

    Usage:
        with SchemaIntrospector(database_url) as introspector:
            columns = introspector.get_column_names()
            tables = introspector.get_table_defs()
            relations = introspector.get_foreign_keys()
    """

    # Tables to exclude from introspection (system tables)
    EXCLUDED_TABLES = {
        "schema_migrations",
        "pg_stat_statements",
        "spatial_ref_sys",
    }

    # information_schema data_type -> ColumnDef.type
    TYPE_MAP = {
        "smallint": "integer",
        "integer": "integer",
        "bigint": "integer",
        "real": "float",
        "double precision": "float",
        "numeric": "numeric",
        "boolean": "boolean",
        "date": "date",
        "timestamp with time zone": "datetime",
        "timestamp without time zone": "datetime",
    }

    def __init__(self, database_url: str):
        """Initialize with database connection URL.

        Args:
            database_url: PostgreSQL connection URL.  A SQLAlchemy driver
                suffix (``postgresql+psycopg://``) is stripped.
        """
        self._database_url = database_url.replace("postgresql+psycopg://", "postgresql://", 1)
        self._conn: Connection | None = None

    def __enter__(self) -> "SchemaIntrospector":
        """Context manager entry - opens connection."""
        url = self._database_url
        if "connect_timeout" not in url:
            separator = "&" if "?" in url else "?"
            url = f"{url}{separator}connect_timeout=10"

        self._conn = psycopg.connect(url)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - closes connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _require_connection(self) -> Connection:
        if not self._conn:
            raise RuntimeError("Introspector not connected. Use with statement.")
        return self._conn

    def get_column_names(self, schema_name: str = "public") -> dict[str, set[str]]:
        """Get column names for all tables.

        Args:
            schema_name: PostgreSQL schema to query (default: public)

        Returns:
            Dict mapping table name to set of column names
        """
        return {
            name: set(table.column_names)
            for name, table in self._get_table_defs(schema_name).items()
        }

    def get_table_defs(self, schema_name: str = "public") -> list[TableDef]:
        """Get every base table with its columns, in table-name order."""
        return list(self._get_table_defs(schema_name).values())

    def get_foreign_keys(self, schema_name: str = "public") -> list[Relation]:
        """Get foreign keys between tables of the schema.

        Columns of a multi-column key are paired by their position in the
        referenced unique constraint.
        """
        conn = self._require_connection()
        query = """
            SELECT
                kcu.constraint_name,
                kcu.table_name,
                kcu.column_name,
                ref.table_name,
                ref.column_name
            FROM information_schema.referential_constraints rc
            JOIN information_schema.key_column_usage kcu
                ON kcu.constraint_name = rc.constraint_name
                AND kcu.constraint_schema = rc.constraint_schema
            JOIN information_schema.key_column_usage ref
                ON ref.constraint_name = rc.unique_constraint_name
                AND ref.constraint_schema = rc.unique_constraint_schema
                AND ref.ordinal_position = kcu.position_in_unique_constraint
            WHERE kcu.table_schema = %s
            ORDER BY kcu.table_name, kcu.constraint_name, kcu.ordinal_position
        """
        with conn.cursor() as cur:
            cur.execute(query, (schema_name,))
            rows = cur.fetchall()

        grouped: dict[str, dict] = {}
        for name, child_table, child_col, parent_table, parent_col in rows:
            if child_table in self.EXCLUDED_TABLES or parent_table in self.EXCLUDED_TABLES:
                continue
            fk = grouped.setdefault(
                name,
                {
                    "name": name,
                    "child_table": child_table,
                    "parent_table": parent_table,
                    "child_columns": [],
                    "parent_columns": [],
                },
            )
            fk["child_columns"].append(child_col)
            fk["parent_columns"].append(parent_col)

        return [Relation(**fk) for fk in grouped.values()]

    def _get_tables(self, schema_name: str) -> list[str]:
        """Get all table names in schema."""
        conn = self._require_connection()
        query = """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = %s
              AND table_type = 'BASE TABLE'
            ORDER BY table_name
        """
        with conn.cursor() as cur:
            cur.execute(query, (schema_name,))
            return [
                row[0] for row in cur.fetchall()
                if row[0] not in self.EXCLUDED_TABLES
            ]

    def _get_primary_keys(self, schema_name: str) -> dict[str, set[str]]:
        """Table name -> primary key column names."""
        conn = self._require_connection()
        query = """
            SELECT kcu.table_name, kcu.column_name
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
                ON tc.constraint_name = kcu.constraint_name
                AND tc.table_schema = kcu.table_schema
                AND tc.table_name = kcu.table_name
            WHERE tc.table_schema = %s
              AND tc.constraint_type = 'PRIMARY KEY'
            ORDER BY kcu.table_name, kcu.ordinal_position
        """
        with conn.cursor() as cur:
            cur.execute(query, (schema_name,))
            keys: dict[str, set[str]] = {}
            for table_name, column_name in cur.fetchall():
                keys.setdefault(table_name, set()).add(column_name)
            return keys

    def _get_table_defs(self, schema_name: str) -> dict[str, TableDef]:
        conn = self._require_connection()
        tables = self._get_tables(schema_name)
        primary_keys = self._get_primary_keys(schema_name)

        query = """
            SELECT table_name, column_name, data_type, is_nullable
            FROM information_schema.columns
            WHERE table_schema = %s
            ORDER BY table_name, ordinal_position
        """
        result: dict[str, TableDef] = {name: TableDef(name=name) for name in tables}
        with conn.cursor() as cur:
            cur.execute(query, (schema_name,))
            for table_name, col_name, data_type, is_nullable in cur.fetchall():
                if table_name not in result:
                    continue
                result[table_name].columns.append(
                    ColumnDef(
                        name=col_name,
                        type=self._normalize_data_type(data_type),
                        nullable=(is_nullable == "YES"),
                        primary_key=col_name in primary_keys.get(table_name, set()),
                    )
                )
        return result

    def _normalize_data_type(self, data_type: str) -> str:
        """Map information_schema types to ``ColumnDef`` types (default: text)."""
        return self.TYPE_MAP.get(data_type.lower(), "text")
