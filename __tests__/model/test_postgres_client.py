import pytest

from relata.model.model import Model
from relata.model.postgres.client import PostgresClient
from relata.utils.db_connections import PGConnectionManager, Transaction


class StubTransaction:
    def __init__(self, log):
        self.log = log

    async def start(self):
        self.log.append("start")

    async def commit(self):
        self.log.append("commit")

    async def rollback(self):
        self.log.append("rollback")


class StubConnection:
    def __init__(self):
        self.log = []

    def transaction(self):
        return StubTransaction(self.log)

    async def execute(self, query, *args):
        self.log.append(("execute", query, args))
        return "UPDATE 1"

    async def fetchrow(self, query, *args):
        self.log.append(("fetchrow", query, args))
        return {"id": 1}


class StubPool:
    def __init__(self):
        self.connection = StubConnection()
        self.released = []

    async def acquire(self):
        return self.connection

    async def release(self, connection):
        self.released.append(connection)


@pytest.fixture()
def pool(monkeypatch):
    stub = StubPool()
    monkeypatch.setattr(PGConnectionManager, "_pool", stub)
    return stub


@pytest.mark.asyncio
async def test_transaction_commit_releases_connection(pool):
    trx = await PostgresClient().transaction()
    assert isinstance(trx, Transaction)
    assert trx.is_transaction

    await trx.execute("UPDATE users SET username = $1", "virk")
    assert await trx.fetch_one("SELECT id FROM users") == {"id": 1}
    await trx.commit()

    assert trx.is_completed
    assert pool.released == [pool.connection]
    assert pool.connection.log[0] == "start"
    assert pool.connection.log[-1] == "commit"
    with pytest.raises(RuntimeError):
        await trx.execute("SELECT 1")


@pytest.mark.asyncio
async def test_transaction_context_manager_rolls_back(pool):
    with pytest.raises(ValueError):
        async with PGConnectionManager.transaction():
            raise ValueError("boom")
    assert pool.connection.log == ["start", "rollback"]


def test_default_client_is_postgres():
    previous = Model.__client__
    Model.use_client(None)
    try:
        assert isinstance(Model.get_default_client(), PostgresClient)
    finally:
        Model.use_client(previous)
