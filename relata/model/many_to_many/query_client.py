import logging
from typing import TYPE_CHECKING, Any, Iterable

from relata.model.many_to_many.query_builder import ManyToManyQueryBuilder
from relata.model.many_to_many.sub_query_builder import ManyToManySubQueryBuilder
from relata.model.postgres.sql.compiler import compile_query
from relata.model.postgres.sql.expressions import param
from relata.model.postgres.sql.queries import Column, InsertQuery, Table
from relata.model.transactions import QueryClient, managed_transaction
from relata.utils.datetime_utils import now_utc

if TYPE_CHECKING:
    from relata.model.model import Model
    from relata.model.relations import ManyToMany

logger = logging.getLogger(__name__)


class ManyToManyQueryClient:
    """Queries and pivot writes in scope of a many to many relationship."""

    def __init__(self, relation: "ManyToMany", parent: "Model", client: QueryClient):
        self.relation = relation
        self.parent = parent
        self.client = client

    @staticmethod
    def for_query(client: QueryClient, relation: "ManyToMany", rows: "Model | list[Model]") -> ManyToManyQueryBuilder:
        query = ManyToManyQueryBuilder(client, rows, relation)
        return relation.apply_query_hook(query)

    @staticmethod
    def eager_query(client: QueryClient, relation: "ManyToMany", rows: "list[Model]") -> ManyToManyQueryBuilder:
        query = ManyToManyQueryBuilder(client, rows, relation)
        query.is_related_preload_query = True
        return relation.apply_query_hook(query)

    @staticmethod
    def sub_query(client: QueryClient, relation: "ManyToMany") -> ManyToManySubQueryBuilder:
        query = ManyToManySubQueryBuilder(client, relation)
        return relation.apply_query_hook(query)

    def query(self) -> ManyToManyQueryBuilder:
        return ManyToManyQueryClient.for_query(self.client, self.relation, self.parent)

    def pivot_query(self) -> ManyToManyQueryBuilder:
        """Query the pivot rows of the parent, returning plain dicts."""
        query = self.query()
        query.is_pivot_only_query = True
        return query

    def _pivot_rows(self, ids: Iterable[Any] | dict[Any, dict[str, Any]]) -> list[dict[str, Any]]:
        relation = self.relation
        items = ids.items() if isinstance(ids, dict) else ((related_id, {}) for related_id in ids)
        now = now_utc()
        rows = []
        for related_id, attributes in items:
            row = dict(attributes)
            relation.hydrate_for_persistence(self.parent, row)
            row[relation.pivot_related_foreign_key] = related_id
            if relation.pivot_created_at:
                row.setdefault(relation.pivot_created_at, now)
            if relation.pivot_updated_at:
                row.setdefault(relation.pivot_updated_at, now)
            rows.append(row)
        return rows

    async def attach(self, ids: Iterable[Any] | dict[Any, dict[str, Any]]) -> None:
        """
        Link related ids to the parent. Pass a mapping to store extra pivot
        columns per link:

            await user.related("skills").attach({1: {"proficiency": "expert"}, 2: {}})
        """
        rows = self._pivot_rows(ids)
        if not rows:
            return

        columns = list(dict.fromkeys(column for row in rows for column in row))
        query = InsertQuery(Table(self.relation.pivot_table))
        query.columns = [Column(column) for column in columns]
        query.values = [[param(row.get(column)) for column in columns] for row in rows]
        sql, params = compile_query(query)

        async def run(trx):
            logger.debug("attaching %d rows to %s", len(rows), self.relation.pivot_table)
            await trx.execute(sql, *params)

        await managed_transaction(self.parent.trx or self.client, run)

    async def detach(self, ids: Iterable[Any] | None = None) -> None:
        """Remove the pivot rows of the parent, all of them or only the ones for `ids`."""
        async def run(trx):
            query = ManyToManyQueryClient.for_query(trx, self.relation, self.parent)
            query.is_pivot_only_query = True
            if ids is not None:
                query.where_in_pivot(self.relation.pivot_related_foreign_key, list(ids))
            await query.delete()

        await managed_transaction(self.parent.trx or self.client, run)
