"""model-store: schema-driven records persisted to MySQL.

Declares data models as property schemas, normalizes and validates
records against them, derives the MySQL tables the models need, converges
a live database with those tables, and stores and restores record graphs.

Usage:
    from model_store import Registry, Record, SqlStore, MysqlAdapter
    from model_store import ValidationError, MutationError, PersistenceError
    from model_store import get_store, load_store_config
"""

__version__ = "0.1.0"

# Errors
from model_store.errors import (
    ModelStoreError,
    MutationError,
    PersistenceError,
    SchemaDefinitionError,
    ValidationError,
)

# Models
from model_store.model import (
    ModelDefinition,
    Property,
    PropertyType,
    Record,
    Registry,
    extend,
    normalize,
    validate_record,
)

# Adapters
from model_store.adapters import MysqlAdapter, SqlAdapter, SqlExecutor

# Schema
from model_store.schema import (
    ReconcilePlan,
    ReconcileResult,
    SchemaIntrospector,
    generate_target,
    reconcile,
)

# Persistence
from model_store.store import SqlStore

# Config
from model_store.config import ConnectionProfile, StoreConfig, load_store_config

# Factory
from model_store.factory import ProfileNotFoundError, get_adapter, get_store

__all__ = [
    # Errors
    "ModelStoreError",
    "ValidationError",
    "MutationError",
    "SchemaDefinitionError",
    "PersistenceError",
    # Models
    "Property",
    "PropertyType",
    "ModelDefinition",
    "Registry",
    "Record",
    "extend",
    "normalize",
    "validate_record",
    # Adapters
    "SqlExecutor",
    "SqlAdapter",
    "MysqlAdapter",
    # Schema
    "SchemaIntrospector",
    "generate_target",
    "reconcile",
    "ReconcilePlan",
    "ReconcileResult",
    # Persistence
    "SqlStore",
    # Config
    "load_store_config",
    "ConnectionProfile",
    "StoreConfig",
    # Factory
    "get_adapter",
    "get_store",
    "ProfileNotFoundError",
]
