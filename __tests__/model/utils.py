import itertools
import re
from typing import Any, Callable

import sqlparse

from relata.model.postgres.sql.compiler import Compiler


def normalize_sql(sql: str) -> str:
    return sqlparse.format(" ".join(sql.split()), reindent=True, keyword_case="upper")


def assert_sql(query, expected_sql: str, expected_params: list, compiler_cls=None):
    """Compare a query (or an already compiled sql string) with the expected sql and params."""
    if isinstance(query, tuple):
        actual_sql, actual_params = query
    else:
        compiler = (compiler_cls or Compiler)()
        actual_sql, actual_params = compiler.compile(query)

    formatted_actual = normalize_sql(actual_sql)
    formatted_expected = normalize_sql(expected_sql)

    if formatted_actual != formatted_expected:
        print("\nExpected SQL:\n", formatted_expected)
        print("\nActual SQL:\n", formatted_actual)

    assert formatted_actual == formatted_expected, "SQL does not match"
    assert list(actual_params) == list(expected_params), "Parameters do not match"


INSERT_PATTERN = re.compile(r"INSERT INTO (\S+) \(([^)]*)\) VALUES")


class FakeTransaction:
    """Transaction of the fake client, writes reach `client.committed` only on commit."""
    is_transaction = True

    def __init__(self, client: "FakeClient"):
        self.client = client
        self.writes: list[tuple[str, list]] = []
        self.committed = False
        self.rolled_back = False

    @property
    def is_completed(self) -> bool:
        return self.committed or self.rolled_back

    async def fetch(self, sql: str, *params):
        return await self.client._run("fetch", sql, params, self)

    async def fetch_one(self, sql: str, *params):
        return await self.client._run("fetch_one", sql, params, self)

    async def execute(self, sql: str, *params):
        return await self.client._run("execute", sql, params, self)

    async def commit(self):
        self.committed = True
        self.client.committed.extend(self.writes)

    async def rollback(self):
        self.rolled_back = True


class FakeClient:
    """
    Recording query client. Every statement lands in `queries`, canned
    results queued with `queue()` are returned by `fetch` / `fetch_one` in
    order, and `INSERT ... RETURNING *` answers with the inserted values plus
    a generated id.
    """
    is_transaction = False

    def __init__(self):
        self.queries: list[tuple[str, list]] = []
        self.committed: list[tuple[str, list]] = []
        self.transactions: list[FakeTransaction] = []
        self.responses: list[Any] = []
        self.fail_on: Callable[[str], bool] | None = None
        self._ids = itertools.count(1)

    def queue(self, *results: Any) -> "FakeClient":
        self.responses.extend(results)
        return self

    @property
    def statements(self) -> list[str]:
        return [sql for sql, _ in self.queries]

    async def _run(self, kind: str, sql: str, params: tuple, trx: FakeTransaction | None = None):
        self.queries.append((sql, list(params)))
        if self.fail_on is not None and self.fail_on(sql):
            raise RuntimeError("forced failure")

        is_write = sql.startswith(("INSERT", "UPDATE", "DELETE"))
        if is_write:
            if trx is not None:
                trx.writes.append((sql, list(params)))
            else:
                self.committed.append((sql, list(params)))

        match = INSERT_PATTERN.match(sql)
        if kind == "fetch_one" and match:
            columns = [column.strip() for column in match.group(2).split(",")]
            row = dict(zip(columns, params))
            row.setdefault("id", next(self._ids))
            return row
        if kind == "execute":
            return "OK"
        if self.responses:
            return self.responses.pop(0)
        return [] if kind == "fetch" else None

    async def fetch(self, sql: str, *params):
        return await self._run("fetch", sql, params)

    async def fetch_one(self, sql: str, *params):
        return await self._run("fetch_one", sql, params)

    async def execute(self, sql: str, *params):
        return await self._run("execute", sql, params)

    async def transaction(self) -> FakeTransaction:
        trx = FakeTransaction(self)
        self.transactions.append(trx)
        return trx
