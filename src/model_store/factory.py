"""Store factory.

Resolves the active connection profile from ``store.toml`` and the
environment, then builds the MySQL adapter and the ``SqlStore`` for a
model registry.

Profile selection:
1. Explicit ``profile_name`` argument
2. ``<PREFIX>DB_PROFILE`` env var
3. Raise ``ProfileNotFoundError``
"""

import importlib
import logging
import os
from pathlib import Path

from sqlalchemy.engine import URL

from model_store.adapters.mysql import MysqlAdapter, build_mysql_url
from model_store.config import ConnectionProfile, load_store_config
from model_store.model.definition import Registry
from model_store.store import SqlStore

logger = logging.getLogger(__name__)


# ============================================================================
# Profile Resolution
# ============================================================================


class ProfileNotFoundError(Exception):
    """Raised when no connection profile is configured."""

    pass


def get_active_profile_name(profile_name: str | None = None, env_prefix: str = "") -> str:
    """Get active profile name from the argument or env var.

    Args:
        profile_name: Explicit profile name; wins when given.
        env_prefix: Prefix for the env var (``"MYAPP_"`` reads
            ``MYAPP_DB_PROFILE``).

    Returns:
        Profile name

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    if profile_name:
        return profile_name

    env_var = f"{env_prefix}DB_PROFILE"
    env_profile = os.environ.get(env_var)
    if env_profile:
        return env_profile

    raise ProfileNotFoundError(
        "No connection profile configured.\n"
        f"Run: {env_var}=<name> model-store plan\n"
        "or pass --profile <name>."
    )


def get_active_profile(
    profile_name: str | None = None,
    env_prefix: str = "",
    config_path: Path | None = None,
) -> tuple[str, ConnectionProfile]:
    """Get active profile name and configuration.

    Returns:
        Tuple of (profile_name, ConnectionProfile)

    Raises:
        ProfileNotFoundError: If no profile configured
        FileNotFoundError: If store.toml is missing
        KeyError: If profile not found in store.toml
    """
    profile_name = get_active_profile_name(profile_name, env_prefix)
    config = load_store_config(config_path)

    if profile_name not in config.profiles:
        raise KeyError(
            f"Profile '{profile_name}' not found in store.toml.\n"
            f"Available profiles: {', '.join(config.profiles.keys())}"
        )

    return profile_name, config.profiles[profile_name]


def resolve_password(profile: ConnectionProfile, env_prefix: str = "") -> str | None:
    """Return the profile password, falling back to ``<PREFIX>DB_PASSWORD``."""
    if profile.password is not None:
        return profile.password
    return os.environ.get(f"{env_prefix}DB_PASSWORD")


def profile_url(profile: ConnectionProfile, env_prefix: str = "") -> URL:
    """Build the ``mysql+pymysql`` URL for a profile."""
    return build_mysql_url(
        host=profile.host,
        user=profile.user,
        password=resolve_password(profile, env_prefix),
        database=profile.database,
        port=profile.port,
        socket=profile.socket or None,
    )


# ============================================================================
# Adapter and Store Factory
# ============================================================================


def get_adapter(
    profile_name: str | None = None,
    env_prefix: str = "",
    config_path: Path | None = None,
) -> MysqlAdapter:
    """Create a MySQL adapter for the active profile.

    The connection is opened lazily on first use.

    Example:
        >>> adapter = get_adapter("local")
        >>> adapter.test_connection()
        True
    """
    name, profile = get_active_profile(profile_name, env_prefix, config_path)
    logger.debug("Using profile %s (%s@%s/%s)", name, profile.user, profile.host, profile.database)
    return MysqlAdapter(
        host=profile.host,
        user=profile.user,
        password=resolve_password(profile, env_prefix),
        database=profile.database,
        port=profile.port,
        socket=profile.socket or None,
    )


def load_registry(path: str) -> Registry:
    """Import a ``Registry`` from ``"package.module:attribute"``.

    Raises:
        ValueError: If *path* has no ``:attribute`` part
        ImportError: If the module cannot be imported
        AttributeError: If the attribute does not exist
        TypeError: If the attribute is not a Registry
    """
    module_name, sep, attribute = path.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Registry path must look like 'package.module:attribute', got '{path}'")

    registry = getattr(importlib.import_module(module_name), attribute)
    if not isinstance(registry, Registry):
        raise TypeError(f"{path} is a {type(registry).__name__}, not a Registry")
    return registry


def get_store(
    registry: Registry | str | None = None,
    profile_name: str | None = None,
    env_prefix: str = "",
    config_path: Path | None = None,
    models: list[str] | None = None,
) -> SqlStore:
    """Create a ``SqlStore`` for the active profile.

    Args:
        registry: Registry instance or import path. Defaults to the
            ``[schema].registry`` setting of store.toml.
        profile_name: Explicit profile name.
        env_prefix: Env var prefix for profile and password lookup.
        config_path: Path to store.toml.
        models: Model names to store (default: every registered model).

    Raises:
        ValueError: If no registry is given or configured
    """
    if registry is None:
        registry = load_store_config(config_path).schema_settings.registry
        if registry is None:
            raise ValueError("No registry given and no [schema] registry set in store.toml.")
    if isinstance(registry, str):
        registry = load_registry(registry)

    adapter = get_adapter(profile_name, env_prefix, config_path)
    return SqlStore(adapter, registry, models)
