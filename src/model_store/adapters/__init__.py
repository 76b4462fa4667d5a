"""SQL execution adapters.

Provides the ``SqlExecutor`` Protocol and concrete blocking adapters built
on SQLAlchemy: ``SqlAdapter`` for any SQLAlchemy URL and ``MysqlAdapter``
for MySQL via PyMySQL.

Usage:
    from model_store.adapters import SqlExecutor, SqlAdapter, MysqlAdapter
"""

from model_store.adapters.base import SqlExecutor
from model_store.adapters.mysql import MysqlAdapter, build_mysql_url
from model_store.adapters.sql import SqlAdapter

__all__ = [
    "SqlExecutor",
    "SqlAdapter",
    "MysqlAdapter",
    "build_mysql_url",
]
