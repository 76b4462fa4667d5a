"""Configuration management: connection profiles, TOML loading, and config models.

Usage:
    >>> from model_store.config import load_store_config, ConnectionProfile, StoreConfig
"""

from model_store.config.loader import load_store_config
from model_store.config.models import ConnectionProfile, SchemaSettings, StoreConfig

__all__ = ["load_store_config", "ConnectionProfile", "SchemaSettings", "StoreConfig"]
