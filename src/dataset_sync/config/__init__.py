"""Configuration management: profiles, sync settings, TOML loading.

Usage:
    >>> from dataset_sync.config import load_db_config, DatabaseProfile, DatabaseConfig
"""

from dataset_sync.config.loader import load_db_config
from dataset_sync.config.models import DatabaseConfig, DatabaseProfile, SyncSettings

__all__ = ["load_db_config", "DatabaseConfig", "DatabaseProfile", "SyncSettings"]
