"""Load a ``DatasetSchema`` from a JSON declaration or a live database.

The JSON file has the shape of ``DatasetSchema.model_dump()``::

    {
      "tables": [
        {"name": "category", "columns": [
          {"name": "id", "type": "integer", "nullable": false, "primary_key": true},
          {"name": "parent_id", "type": "integer"}
        ]}
      ],
      "relations": [
        {"parent_table": "category", "child_table": "category",
         "parent_columns": ["id"], "child_columns": ["parent_id"]}
      ]
    }
"""

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from dataset_sync.errors import ConfigurationError
from dataset_sync.schema.introspector import SchemaIntrospector
from dataset_sync.schema.models import DatasetSchema

logger = logging.getLogger(__name__)


def load_schema(path: Path | str) -> DatasetSchema:
    """Read and validate a JSON schema declaration.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ConfigurationError: If the file is not valid JSON or not a valid
            schema
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Schema file not found: {path}")

    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in schema file {path}: {e}") from e

    try:
        return DatasetSchema.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid schema in {path}: {e}") from e


def schema_from_database(
    introspector: SchemaIntrospector,
    schema_name: str = "public",
    tables: list[str] | None = None,
) -> DatasetSchema:
    """Build a ``DatasetSchema`` from the live database.

    Args:
        introspector: Connected ``SchemaIntrospector``.
        schema_name: PostgreSQL schema to read.
        tables: Restrict to these tables; foreign keys leaving the
            selection are dropped.

    Returns:
        Schema with tables in name order and every foreign key between
        them.
    """
    table_defs = introspector.get_table_defs(schema_name)
    if tables is not None:
        wanted = set(tables)
        table_defs = [t for t in table_defs if t.name in wanted]

    names = {t.name for t in table_defs}
    relations = []
    for rel in introspector.get_foreign_keys(schema_name):
        if rel.parent_table in names and rel.child_table in names:
            relations.append(rel)
        else:
            logger.debug("Skipping foreign key %s outside the selected tables", rel.name)

    return DatasetSchema(tables=table_defs, relations=relations)
