"""Pydantic models for schema declaration and validation.

This module contains schema-domain models:
- Declaration models: ColumnDef, TableDef, Relation, DatasetSchema
- Validation models: ColumnDiff, SchemaValidationResult
- Connection result: ConnectionResult

Configuration models (DatabaseProfile, DatabaseConfig, SyncSettings) live in
dataset_sync.config.models.

Usage:
    from dataset_sync.schema.models import ColumnDef, DatasetSchema, Relation, TableDef

    schema = DatasetSchema(
        tables=[
            TableDef(name="category", columns=[
                ColumnDef(name="id", type="integer", nullable=False, primary_key=True),
                ColumnDef(name="parent_id", type="integer"),
            ]),
        ],
        relations=[
            Relation(name="fk_category_parent", parent_table="category",
                     child_table="category", parent_columns=["id"],
                     child_columns=["parent_id"]),
        ],
    )
"""

from pydantic import BaseModel, Field, model_validator


# ============================================================================
# Declaration Models
# ============================================================================


class ColumnDef(BaseModel):
    """Declared column of a table.

    Example:
        >>> col = ColumnDef(name="id", type="integer", primary_key=True)
        >>> col.nullable
        True
    """

    name: str
    type: str = "text"  # text, integer, float, numeric, boolean, date, datetime
    nullable: bool = True
    primary_key: bool = False


class TableDef(BaseModel):
    """Declared table: a name and its ordered columns."""

    name: str
    columns: list[ColumnDef] = Field(default_factory=list)

    @property
    def column_names(self) -> list[str]:
        """Column names in declaration order."""
        return [c.name for c in self.columns]

    @property
    def primary_key(self) -> list[str]:
        """Names of the primary key columns (may be empty)."""
        return [c.name for c in self.columns if c.primary_key]

    def column(self, name: str) -> ColumnDef | None:
        """Find a column by name."""
        for c in self.columns:
            if c.name == name:
                return c
        return None


class Relation(BaseModel):
    """Foreign key from ``child_table`` to ``parent_table``.

    A relation whose parent and child table are the same is a
    self-reference: it links rows of one table into a parent/child tree.
    """

    name: str = ""
    parent_table: str
    child_table: str
    parent_columns: list[str]
    child_columns: list[str]

    @property
    def is_self_reference(self) -> bool:
        return self.parent_table == self.child_table

    @model_validator(mode="after")
    def _check_columns(self) -> "Relation":
        if not self.parent_columns:
            raise ValueError(f"Relation '{self.name}' declares no columns")
        if len(self.parent_columns) != len(self.child_columns):
            raise ValueError(
                f"Relation '{self.name}' has {len(self.parent_columns)} parent "
                f"columns but {len(self.child_columns)} child columns"
            )
        if not self.name:
            self.name = f"fk_{self.child_table}_{self.parent_table}"
        return self


class DatasetSchema(BaseModel):
    """Declarative schema of a dataset: tables plus the relations between them.

    Tables keep their declaration order, which is also the tie-break for
    tables unrelated by foreign keys when the write order is computed.
    """

    tables: list[TableDef]
    relations: list[Relation] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_references(self) -> "DatasetSchema":
        seen: set[str] = set()
        for table in self.tables:
            if table.name in seen:
                raise ValueError(f"Duplicate table in schema: {table.name}")
            seen.add(table.name)

        for rel in self.relations:
            for table_name, columns in (
                (rel.parent_table, rel.parent_columns),
                (rel.child_table, rel.child_columns),
            ):
                table = self.table(table_name)
                if table is None:
                    raise ValueError(
                        f"Relation '{rel.name}' references unknown table '{table_name}'"
                    )
                missing = [c for c in columns if table.column(c) is None]
                if missing:
                    raise ValueError(
                        f"Relation '{rel.name}' references unknown columns "
                        f"{table_name}.{', '.join(missing)}"
                    )
        return self

    @property
    def table_names(self) -> list[str]:
        """Table names in declaration order."""
        return [t.name for t in self.tables]

    def table(self, name: str) -> TableDef | None:
        """Find a TableDef by name."""
        for t in self.tables:
            if t.name == name:
                return t
        return None

    def self_relation(self, table_name: str) -> Relation | None:
        """Return the first self-referencing relation of a table, if any."""
        for rel in self.relations:
            if rel.is_self_reference and rel.child_table == table_name:
                return rel
        return None

    def parent_relations(self, table_name: str) -> list[Relation]:
        """Relations in which ``table_name`` is the child (self-references excluded)."""
        return [
            rel for rel in self.relations
            if rel.child_table == table_name and not rel.is_self_reference
        ]

    def expected_columns(self) -> dict[str, set[str]]:
        """Table name -> column names, in the shape ``validate_schema`` expects."""
        return {t.name: set(t.column_names) for t in self.tables}


# ============================================================================
# Validation Result Models
# ============================================================================


class ColumnDiff(BaseModel):
    """A missing column detected during validation."""

    table: str
    column: str
    message: str = ""


class SchemaValidationResult(BaseModel):
    """Result of schema validation.

    Example:
        >>> result = SchemaValidationResult(valid=True)
        >>> result.error_count
        0
        >>> result.format_report()
        'Schema valid'
    """

    valid: bool
    missing_tables: list[str] = Field(default_factory=list)
    missing_columns: list[ColumnDiff] = Field(default_factory=list)
    extra_tables: list[str] = Field(default_factory=list)  # Warning only

    @property
    def error_count(self) -> int:
        """Count of critical errors (missing tables + missing columns)."""
        return len(self.missing_tables) + len(self.missing_columns)

    def format_report(self) -> str:
        """Format validation result as human-readable report."""
        if self.valid:
            return "Schema valid"

        lines = ["Schema validation failed:"]

        if self.missing_tables:
            lines.append(f"\n  Missing tables ({len(self.missing_tables)}):")
            for table in self.missing_tables:
                lines.append(f"    - {table}")

        if self.missing_columns:
            lines.append(f"\n  Missing columns ({len(self.missing_columns)}):")
            for diff in self.missing_columns:
                lines.append(f"    - {diff.table}.{diff.column}")

        if self.extra_tables:
            lines.append(f"\n  Extra tables (warning): {', '.join(self.extra_tables)}")

        return "\n".join(lines)


# ============================================================================
# Connection Result
# ============================================================================


class ConnectionResult(BaseModel):
    """Result of connect_and_validate().

    Example:
        >>> result = ConnectionResult(success=True, profile_name="dev", schema_valid=True)
        >>> result.success
        True
    """

    success: bool
    profile_name: str | None = None
    schema_valid: bool | None = None
    schema_report: SchemaValidationResult | None = None
    error: str | None = None
