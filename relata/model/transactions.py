import logging
from typing import Awaitable, Callable, Protocol, TypeVar, runtime_checkable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class QueryClient(Protocol):
    """What the builders and models need from a database client or an open transaction."""
    is_transaction: bool

    async def fetch(self, query: str, *args) -> list[dict]:
        ...

    async def fetch_one(self, query: str, *args) -> dict | None:
        ...

    async def execute(self, query: str, *args) -> str:
        ...


async def managed_transaction(client: QueryClient, callback: Callable[[QueryClient], Awaitable[T]]) -> T:
    """
    Run `callback` inside a transaction.

    When `client` already is a transaction it is handed to the callback as is,
    and committing or rolling it back stays with whoever opened it. Otherwise
    a new transaction is opened, committed when the callback returns and
    rolled back when it raises. The original error is re-raised.
    """
    if getattr(client, "is_transaction", False):
        return await callback(client)

    trx = await client.transaction()
    try:
        result = await callback(trx)
    except Exception:
        logger.debug("rolling back managed transaction")
        await trx.rollback()
        raise
    await trx.commit()
    return result
