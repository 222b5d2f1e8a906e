"""Pydantic models for db.toml configuration."""

from typing import Literal

from pydantic import BaseModel, Field


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from db.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    provider: str = "postgres"


class SyncSettings(BaseModel):
    """Defaults for ``SyncManager`` from the ``[sync]`` section."""

    update_order: Literal["insert_update_delete", "update_insert_delete"] = (
        "insert_update_delete"
    )
    backup_before_update: bool = False
    isolation_level: str | None = "READ COMMITTED"
    check_concurrency: bool = True


class DatabaseConfig(BaseModel):
    """Complete database configuration from db.toml."""

    profiles: dict[str, DatabaseProfile]
    schema_file: str = "schema.json"
    validate_on_connect: bool = True
    sync: SyncSettings = Field(default_factory=SyncSettings)
