"""MySQL SQL executor (PyMySQL driver).

``MysqlAdapter`` builds a ``mysql+pymysql`` URL from connection parameters
and, unless told otherwise, creates the configured database on first
connect when it does not exist yet.

Usage:
    from model_store.adapters.mysql import MysqlAdapter

    adapter = MysqlAdapter(host="localhost", user="root", password="secret",
                           database="models")
    adapter.test_connection()
"""

import logging
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Connection
from sqlalchemy.exc import SQLAlchemyError

from model_store.adapters.sql import SqlAdapter
from model_store.errors import PersistenceError

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3306


def build_mysql_url(
    host: str,
    user: str,
    password: str | None = None,
    database: str | None = None,
    port: int | None = DEFAULT_PORT,
    socket: str | None = None,
) -> URL:
    """Build a ``mysql+pymysql`` URL with the utf8mb4 charset.

    Example:
        >>> build_mysql_url("db", "app", "pw", "models").render_as_string(hide_password=True)
        'mysql+pymysql://app:***@db:3306/models?charset=utf8mb4'
    """
    query: dict[str, str] = {"charset": "utf8mb4"}
    if socket:
        query["unix_socket"] = socket
    return URL.create(
        "mysql+pymysql",
        username=user,
        password=password or None,
        host=host,
        port=port,
        database=database or None,
        query=query,
    )


class MysqlAdapter(SqlAdapter):
    """MySQL implementation of the ``SqlExecutor`` protocol.

    Args:
        host: Server host name.
        user: User name.
        password: Password (optional).
        database: Database name.
        port: Server port.
        socket: Optional unix socket path.
        create_database: Create *database* on first connect if missing.
        **engine_kwargs: Forwarded to ``create_sync_engine``.
    """

    def __init__(
        self,
        host: str,
        user: str,
        password: str | None = None,
        database: str = "",
        port: int | None = DEFAULT_PORT,
        socket: str | None = None,
        create_database: bool = True,
        **engine_kwargs: Any,
    ) -> None:
        self._database = database
        self._create_database = create_database
        self._server_url = build_mysql_url(host, user, password, None, port, socket)
        super().__init__(
            build_mysql_url(host, user, password, database, port, socket), **engine_kwargs
        )

    @property
    def database(self) -> str:
        return self._database

    def create_database_sql(self) -> str:
        return f"CREATE DATABASE IF NOT EXISTS {self.name(self._database)}"

    def ensure_database(self) -> None:
        """Create the configured database if it does not exist."""
        engine = create_engine(self._server_url)
        try:
            with engine.connect() as conn:
                conn.exec_driver_sql(self.create_database_sql())
                conn.commit()
            logger.debug("Ensured database %s exists", self._database)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to create database '{self._database}': {e}") from e
        finally:
            engine.dispose()

    def connect(self) -> Connection:
        if (self._conn is None or self._conn.closed) and self._create_database and self._database:
            self.ensure_database()
            # Only on the first connect
            self._create_database = False
        return super().connect()
