"""Table adapters package.

Provides the ``TableAdapter`` Protocol, the shared ``Database``
connection/transaction holder and the SQLAlchemy Core implementation.

Usage:
    from dataset_sync.adapters import Database, SqlAlchemyTableAdapter, TableAdapter
"""

from dataset_sync.adapters.base import TableAdapter
from dataset_sync.adapters.database import Database, create_engine_pooled, normalize_url
from dataset_sync.adapters.sqlalchemy import SqlAlchemyTableAdapter, schema_to_metadata

__all__ = [
    "TableAdapter",
    "Database",
    "create_engine_pooled",
    "normalize_url",
    "SqlAlchemyTableAdapter",
    "schema_to_metadata",
]
