"""Store configuration loading from TOML files."""

import tomllib
from pathlib import Path

from model_store.config.models import ConnectionProfile, SchemaSettings, StoreConfig

DEFAULT_CONFIG_FILE = "store.toml"


def load_store_config(config_path: Path | None = None) -> StoreConfig:
    """Load store configuration from a TOML file.

    Args:
        config_path: Path to store.toml (default: ``./store.toml`` in the
            current working directory, resolved at call time)

    Returns:
        StoreConfig with all profiles and schema settings

    Raises:
        FileNotFoundError: If config file doesn't exist
        pydantic.ValidationError: If a profile or the schema table is invalid
    """
    if config_path is None:
        config_path = Path.cwd() / DEFAULT_CONFIG_FILE

    if not config_path.exists():
        raise FileNotFoundError(
            f"Store config not found: {config_path}\n"
            f"Create {DEFAULT_CONFIG_FILE} with at least one [profiles.<name>] table."
        )

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    # Parse profiles
    profiles = {}
    for name, profile_data in data.get("profiles", {}).items():
        profiles[name] = ConnectionProfile(**profile_data)

    # Parse schema settings
    schema_settings = SchemaSettings(**data.get("schema", {}))

    return StoreConfig(profiles=profiles, schema_settings=schema_settings)
