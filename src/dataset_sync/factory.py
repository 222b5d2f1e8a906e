"""Database and sync manager factory.

Profile mode: ``db.toml`` lists named connection profiles; the active one
comes from the ``{env_prefix}DB_PROFILE`` env var or from the
``.db-profile`` lock file written by a successful ``connect``.

Usage:
    from dataset_sync.factory import connect_and_validate, create_sync_manager, get_database

    result = connect_and_validate("dev", schema)
    if result.success:
        db = get_database()
        manager = create_sync_manager(db, schema, config.sync)
"""

import logging
import os
from pathlib import Path
from urllib.parse import quote

from sqlalchemy import MetaData, inspect

from dataset_sync.adapters.database import Database
from dataset_sync.adapters.sqlalchemy import SqlAlchemyTableAdapter, schema_to_metadata
from dataset_sync.config import load_db_config
from dataset_sync.config.models import DatabaseProfile, SyncSettings
from dataset_sync.errors import ConfigurationError, SchemaConsistencyError
from dataset_sync.schema.comparator import validate_schema
from dataset_sync.schema.introspector import SchemaIntrospector
from dataset_sync.schema.loader import load_schema
from dataset_sync.schema.models import ConnectionResult, DatasetSchema, SchemaValidationResult
from dataset_sync.sync.manager import SyncManager, UpdateOrderOption

logger = logging.getLogger(__name__)

# Profile lock file path
_PROFILE_LOCK_FILE = Path.cwd() / ".db-profile"


class ProfileNotFoundError(ConfigurationError):
    """Raised when no database profile is configured."""

    pass


# ============================================================================
# Profile Lock File Operations
# ============================================================================


def read_profile_lock() -> str | None:
    """Read profile name from lock file.

    Returns:
        Profile name if lock file exists, None otherwise
    """
    if _PROFILE_LOCK_FILE.exists():
        return _PROFILE_LOCK_FILE.read_text().strip() or None
    return None


def write_profile_lock(profile_name: str) -> None:
    """Write profile name to lock file.

    Only call this after successful schema validation.
    """
    _PROFILE_LOCK_FILE.write_text(profile_name)


def clear_profile_lock() -> None:
    """Remove profile lock file."""
    if _PROFILE_LOCK_FILE.exists():
        _PROFILE_LOCK_FILE.unlink()


def get_active_profile_name(env_prefix: str = "") -> str:
    """Get active profile name from env var or lock file.

    Priority:
    1. ``{env_prefix}DB_PROFILE`` env var (initial connect, CI/CD)
    2. ``.db-profile`` file (validated profile from previous connect)
    3. Raise ProfileNotFoundError

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    env_profile = os.environ.get(f"{env_prefix}DB_PROFILE")
    if env_profile:
        return env_profile

    lock_profile = read_profile_lock()
    if lock_profile:
        return lock_profile

    raise ProfileNotFoundError(
        "No database profile configured.\n"
        f"Run: {env_prefix}DB_PROFILE=<name> dataset-sync connect"
    )


def get_active_profile(
    env_prefix: str = "",
    config_path: Path | None = None,
) -> tuple[str, DatabaseProfile]:
    """Get active profile name and configuration.

    Raises:
        ProfileNotFoundError: If no profile configured
        KeyError: If profile not found in db.toml
    """
    profile_name = get_active_profile_name(env_prefix)
    config = load_db_config(config_path)

    if profile_name not in config.profiles:
        raise KeyError(
            f"Profile '{profile_name}' not found in db.toml.\n"
            f"Available profiles: {', '.join(config.profiles.keys())}"
        )

    return profile_name, config.profiles[profile_name]


# ============================================================================
# Connection and Validation
# ============================================================================


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    The ``[YOUR-PASSWORD]`` placeholder is replaced by the URL-quoted
    ``db_password``.
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


def connect_and_validate(
    profile_name: str | None = None,
    schema: DatasetSchema | None = None,
    env_prefix: str = "",
    validate_only: bool = False,
    config_path: Path | None = None,
) -> ConnectionResult:
    """Connect to database and validate its schema.

    Call this once to validate and persist the profile selection; later
    ``get_database()`` calls use the validated profile.

    Args:
        profile_name: Profile name from db.toml.  If None, uses the
            ``{env_prefix}DB_PROFILE`` env var or the lock file.
        schema: Expected schema.  If None, the ``[schema] file`` of db.toml
            is loaded.
        env_prefix: Prefix of the profile env var.
        validate_only: Only validate, do not write the lock file.
        config_path: Path to db.toml (default: ./db.toml).

    Returns:
        ConnectionResult with success status and validation report

    Example:
        >>> result = connect_and_validate("dev")
        >>> if not result.success:
        ...     print(result.error)
    """
    if profile_name is None:
        try:
            profile_name = get_active_profile_name(env_prefix)
        except ProfileNotFoundError as e:
            return ConnectionResult(success=False, error=str(e))

    try:
        config = load_db_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        return ConnectionResult(success=False, profile_name=profile_name, error=str(e))

    if profile_name not in config.profiles:
        available = ", ".join(config.profiles.keys())
        return ConnectionResult(
            success=False,
            profile_name=profile_name,
            error=f"Profile '{profile_name}' not found. Available: {available}",
        )
    profile = config.profiles[profile_name]
    url = resolve_url(profile)

    validation: SchemaValidationResult | None = None
    if config.validate_on_connect:
        if schema is None:
            try:
                schema = load_schema(config.schema_file)
            except (FileNotFoundError, ConfigurationError) as e:
                return ConnectionResult(success=False, profile_name=profile_name, error=str(e))

        try:
            with SchemaIntrospector(url) as introspector:
                actual_columns = introspector.get_column_names()
        except Exception as e:
            return ConnectionResult(
                success=False,
                profile_name=profile_name,
                error=f"Failed to connect to database: {e}",
            )

        validation = validate_schema(actual_columns, schema.expected_columns())
        if not validation.valid:
            return ConnectionResult(
                success=False,
                profile_name=profile_name,
                schema_valid=False,
                schema_report=validation,
                error=f"Schema validation failed: {validation.error_count} errors",
            )

    if not validate_only:
        write_profile_lock(profile_name)
        logger.info("Profile '%s' validated and locked", profile_name)

    return ConnectionResult(
        success=True,
        profile_name=profile_name,
        schema_valid=validation.valid if validation is not None else None,
        schema_report=validation,
    )


# ============================================================================
# Database and Manager Factory
# ============================================================================


def get_database(
    profile_name: str | None = None,
    env_prefix: str = "",
    database_url: str | None = None,
    config_path: Path | None = None,
) -> Database:
    """Create a ``Database`` for a URL or a db.toml profile.

    Args:
        profile_name: Profile to use; the active profile when None.
        env_prefix: Prefix of the profile env var.
        database_url: Explicit URL; bypasses db.toml entirely.
        config_path: Path to db.toml (default: ./db.toml).

    Raises:
        ProfileNotFoundError: If no profile is configured
        KeyError: If the profile is not in db.toml
    """
    if database_url is not None:
        return Database(database_url)

    if profile_name is None:
        _, profile = get_active_profile(env_prefix, config_path)
    else:
        config = load_db_config(config_path)
        if profile_name not in config.profiles:
            raise KeyError(
                f"Profile '{profile_name}' not found in db.toml.\n"
                f"Available profiles: {', '.join(config.profiles.keys())}"
            )
        profile = config.profiles[profile_name]

    return Database(resolve_url(profile))


def check_database_schema(database: Database, schema: DatasetSchema) -> SchemaValidationResult:
    """Validate the live tables behind ``database`` against ``schema``.

    Uses SQLAlchemy's inspector, so it works on every backend the engine
    supports.
    """
    inspector = inspect(database.engine)
    actual_columns = {
        table_name: {c["name"] for c in inspector.get_columns(table_name)}
        for table_name in inspector.get_table_names()
    }
    return validate_schema(actual_columns, schema.expected_columns())


def create_sync_manager(
    database: Database,
    schema: DatasetSchema,
    settings: SyncSettings | None = None,
    metadata: MetaData | None = None,
    validate: bool = False,
) -> SyncManager:
    """Build a ``SyncManager`` with one ``SqlAlchemyTableAdapter`` per table.

    Args:
        database: Shared connection/transaction holder.
        schema: Declared tables and relations.
        settings: ``[sync]`` settings; defaults when None.
        metadata: SQLAlchemy metadata for the tables; built from
            ``schema`` when None.
        validate: Check the live store first.

    Raises:
        SchemaConsistencyError: If ``validate`` is set and the store lacks
            expected tables or columns.
        SchemaCycleError: If foreign keys between tables form a cycle.
    """
    settings = settings or SyncSettings()

    if validate:
        result = check_database_schema(database, schema)
        if not result.valid:
            raise SchemaConsistencyError(result)

    metadata = metadata if metadata is not None else schema_to_metadata(schema)
    adapters = {
        table_def.name: SqlAlchemyTableAdapter(
            database,
            table_def,
            metadata,
            check_concurrency=settings.check_concurrency,
        )
        for table_def in schema.tables
    }

    return SyncManager(
        database,
        schema,
        adapters,
        update_order=UpdateOrderOption(settings.update_order),
        backup_before_update=settings.backup_before_update,
        isolation_level=settings.isolation_level,
    )
