"""Pydantic models for store configuration."""

from pydantic import BaseModel, Field

from model_store.adapters.mysql import DEFAULT_PORT


# ============================================================================
# Configuration Models
# ============================================================================


class ConnectionProfile(BaseModel):
    """MySQL connection profile from store.toml."""

    host: str = "localhost"
    user: str
    password: str | None = None  # Falls back to <PREFIX>DB_PASSWORD
    database: str
    port: int = DEFAULT_PORT
    socket: str = ""
    description: str = ""


class SchemaSettings(BaseModel):
    """The ``[schema]`` table of store.toml."""

    registry: str | None = None  # "package.module:attribute"
    guess_renames: bool = False


class StoreConfig(BaseModel):
    """Complete store configuration from store.toml."""

    profiles: dict[str, ConnectionProfile] = Field(default_factory=dict)
    schema_settings: SchemaSettings = Field(default_factory=SchemaSettings)
