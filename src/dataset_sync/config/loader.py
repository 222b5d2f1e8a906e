"""Load db.toml into ``DatabaseConfig``."""

import tomllib
from pathlib import Path

from pydantic import ValidationError

from dataset_sync.config.models import DatabaseConfig, DatabaseProfile, SyncSettings


def load_db_config(config_path: Path | None = None) -> DatabaseConfig:
    """Load database configuration from TOML file.

    Args:
        config_path: Path to db.toml (default: ``Path.cwd() / "db.toml"``)

    Returns:
        DatabaseConfig with all profiles and sync settings

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is invalid
    """
    if config_path is None:
        config_path = Path.cwd() / "db.toml"

    if not config_path.exists():
        raise FileNotFoundError(
            f"Database config not found: {config_path}\n"
            f"Copy db.toml.example to db.toml and configure your profiles."
        )

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {config_path}: {e}") from e

    try:
        # Parse profiles
        profiles = {}
        for name, profile_data in data.get("profiles", {}).items():
            profiles[name] = DatabaseProfile(**profile_data)

        # Parse schema settings
        schema_settings = data.get("schema", {})

        return DatabaseConfig(
            profiles=profiles,
            schema_file=schema_settings.get("file", "schema.json"),
            validate_on_connect=schema_settings.get("validate_on_connect", True),
            sync=SyncSettings(**data.get("sync", {})),
        )
    except ValidationError as e:
        raise ValueError(f"Invalid database config in {config_path}: {e}") from e
