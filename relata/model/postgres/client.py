import logging
from typing import Any, Optional

from relata.utils.db_connections import PGConnectionManager, Transaction

logger = logging.getLogger(__name__)


class PostgresClient:
    """Query client executing compiled sql through the shared connection pool."""

    is_transaction = False

    async def fetch(self, sql: str, *values: Any) -> list[dict]:
        """Fetch results from a SQL query"""
        return await PGConnectionManager.fetch(sql, *values)

    async def fetch_one(self, sql: str, *values: Any) -> Optional[dict]:
        """Fetch a single row from a SQL query"""
        return await PGConnectionManager.fetch_one(sql, *values)

    async def execute(self, sql: str, *values: Any):
        """Execute a SQL statement"""
        return await PGConnectionManager.execute(sql, *values)

    async def transaction(self) -> Transaction:
        """Open a new transaction. The caller owns its commit / rollback."""
        return await PGConnectionManager.transaction().begin()
