"""Schema declaration, validation and introspection.

Usage:
    >>> from dataset_sync.schema import DatasetSchema, load_schema, validate_schema
"""

from dataset_sync.schema.comparator import validate_schema
from dataset_sync.schema.introspector import SchemaIntrospector
from dataset_sync.schema.loader import load_schema, schema_from_database
from dataset_sync.schema.models import (
    ColumnDef,
    ColumnDiff,
    ConnectionResult,
    DatasetSchema,
    Relation,
    SchemaValidationResult,
    TableDef,
)

__all__ = [
    "validate_schema",
    "SchemaIntrospector",
    "load_schema",
    "schema_from_database",
    "ColumnDef",
    "ColumnDiff",
    "ConnectionResult",
    "DatasetSchema",
    "Relation",
    "SchemaValidationResult",
    "TableDef",
]
