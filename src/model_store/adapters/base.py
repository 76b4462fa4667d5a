"""SQL execution protocol definition.

Defines the ``SqlExecutor`` Protocol: the narrow SQL execution capability
the reconciler, introspector and store are written against.  All methods
are blocking; one executor wraps one connection and is not safe for
concurrent use.

Usage:
    from model_store.adapters.base import SqlExecutor

    def count_places(executor: SqlExecutor) -> int:
        rows = executor.query("SELECT COUNT(*) AS n FROM `Place`")
        return rows[0]["n"]
"""

from typing import Any, Protocol


class SqlExecutor(Protocol):
    """SQL execution interface that all adapters must implement."""

    def execute(self, statement: Any, params: dict[str, Any] | None = None) -> int:
        """Execute a statement that returns no rows (DDL, INSERT, UPDATE, DELETE).

        Args:
            statement: SQL string or a handle returned by ``prepare()``.
            params: Optional dict of named parameters (``:name`` placeholders).

        Returns:
            Number of affected rows (0 for DDL).

        Raises:
            PersistenceError: If execution fails.

        Example:
            executor.execute("ALTER TABLE `Place` ADD COLUMN `name` varchar(64)")
            executor.execute("DELETE FROM `Place` WHERE `id` = :id", {"id": "oslo"})
        """
        ...

    def query(self, statement: Any, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Execute a statement returning rows.

        Returns:
            List of dicts, one per row, in result order.  Empty list if no rows.

        Raises:
            PersistenceError: If execution fails.
        """
        ...

    def prepare(self, sql: str) -> Any:
        """Return a reusable handle for *sql*, accepted by ``execute()`` and ``query()``."""
        ...

    def quote(self, value: Any) -> str:
        """Quote a literal value for inclusion in SQL text."""
        ...

    def name(self, identifier: str) -> str:
        """Quote a database, table, column or index name."""
        ...

    def close(self) -> None:
        """Close the underlying connection."""
        ...
