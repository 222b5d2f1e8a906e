"""dataset-sync: atomic multi-table change-set synchronization.

Persists every pending change of an in-memory dataset (rows marked added,
modified or deleted across many related tables) to a relational store in
one transaction, ordered by foreign keys between tables and by
self-references within a table.  On failure the transaction is rolled back
and the dataset restored.

Usage:
    from dataset_sync import Dataset, DatasetSchema, SyncManager, create_sync_manager
    from dataset_sync import load_db_config, load_schema, get_database
"""

__version__ = "0.1.0"

# In-memory model
from dataset_sync.dataset import DataRow, Dataset, DataTable, RowState, RowVersion

# Adapters
from dataset_sync.adapters import Database, SqlAlchemyTableAdapter, TableAdapter

# Config
from dataset_sync.config import DatabaseConfig, DatabaseProfile, SyncSettings, load_db_config

# Errors
from dataset_sync.errors import (
    ConcurrencyError,
    ConfigurationError,
    SchemaConsistencyError,
    SchemaCycleError,
    SyncError,
    SyncInProgressError,
    TransactionStartError,
)

# Factory
from dataset_sync.factory import (
    ProfileNotFoundError,
    connect_and_validate,
    create_sync_manager,
    get_database,
    resolve_url,
)

# Schema
from dataset_sync.schema import (
    ColumnDef,
    DatasetSchema,
    Relation,
    TableDef,
    load_schema,
    validate_schema,
)

# Synchronization
from dataset_sync.sync import (
    SyncManager,
    SyncState,
    TableOrder,
    UpdateOrderOption,
    synchronize_all,
)

__all__ = [
    # In-memory model
    "Dataset",
    "DataTable",
    "DataRow",
    "RowState",
    "RowVersion",
    # Adapters
    "TableAdapter",
    "Database",
    "SqlAlchemyTableAdapter",
    # Config
    "load_db_config",
    "DatabaseConfig",
    "DatabaseProfile",
    "SyncSettings",
    # Errors
    "SyncError",
    "ConfigurationError",
    "SchemaCycleError",
    "SchemaConsistencyError",
    "TransactionStartError",
    "ConcurrencyError",
    "SyncInProgressError",
    # Factory
    "ProfileNotFoundError",
    "connect_and_validate",
    "create_sync_manager",
    "get_database",
    "resolve_url",
    # Schema
    "ColumnDef",
    "TableDef",
    "Relation",
    "DatasetSchema",
    "load_schema",
    "validate_schema",
    # Synchronization
    "SyncManager",
    "SyncState",
    "TableOrder",
    "UpdateOrderOption",
    "synchronize_all",
]
