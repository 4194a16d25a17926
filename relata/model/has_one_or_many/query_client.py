from typing import TYPE_CHECKING, Any

from relata.model.postgres.sql.expressions import Eq
from relata.model.postgres.sql.queries import Column, Table
from relata.model.query_builder import ModelQueryBuilder
from relata.model.relations import get_value, unique
from relata.model.transactions import QueryClient, managed_transaction

if TYPE_CHECKING:
    from relata.model.model import Model
    from relata.model.relations import HasOne


class HasOneOrManyQueryClient:
    """Query client for the has one and has many relationships."""

    def __init__(self, relation: "HasOne", parent: "Model", client: QueryClient):
        self.relation = relation
        self.parent = parent
        self.client = client

    @staticmethod
    def for_query(client: QueryClient, relation: "HasOne", rows: "Model | list[Model]") -> ModelQueryBuilder:
        query = ModelQueryBuilder(relation.related_model(), client)
        if isinstance(rows, list):
            query.where_in(
                relation.foreign_key,
                unique([get_value(row, relation.local_key, relation, "preload") for row in rows]),
            )
        else:
            query.where(relation.foreign_key, get_value(rows, relation.local_key, relation, "query"))
        return relation.apply_query_hook(query)

    @staticmethod
    def eager_query(client: QueryClient, relation: "HasOne", rows: "list[Model]") -> ModelQueryBuilder:
        query = HasOneOrManyQueryClient.for_query(client, relation, rows)
        query.is_related_preload_query = True
        return query

    @staticmethod
    def sub_query(client: QueryClient, relation: "HasOne") -> ModelQueryBuilder:
        related_table = Table(relation.related_model().get_table_name())
        query = ModelQueryBuilder(relation.related_model(), client)
        query.where(Eq(Column(relation.foreign_key, related_table), Column(relation.local_key, Table(relation.model.get_table_name()))))
        return relation.apply_query_hook(query)

    def query(self) -> ModelQueryBuilder:
        return HasOneOrManyQueryClient.for_query(self.client, self.relation, self.parent)

    async def save(self, related: "Model") -> "Model":
        """Persist the parent when needed, then the related model pointing at it."""
        async def run(trx):
            self.parent.use_transaction(trx)
            await self.parent.save()

            self.relation.hydrate_for_persistence(self.parent, related)
            related.use_transaction(trx)
            return await related.save()

        return await managed_transaction(self.parent.trx or self.client, run)

    async def create(self, values: dict[str, Any]) -> "Model":
        created = await self.create_many([values])
        return created[0]

    async def save_many(self, related: "list[Model]") -> "list[Model]":
        async def run(trx):
            self.parent.use_transaction(trx)
            await self.parent.save()
            for row in related:
                self.relation.hydrate_for_persistence(self.parent, row)
                row.use_transaction(trx)
                await row.save()
            return related

        return await managed_transaction(self.parent.trx or self.client, run)

    async def create_many(self, values: list[dict[str, Any]]) -> "list[Model]":
        model = self.relation.related_model()

        async def run(trx):
            self.parent.use_transaction(trx)
            await self.parent.save()
            created = []
            for attributes in values:
                attributes = dict(attributes)
                self.relation.hydrate_for_persistence(self.parent, attributes)
                related = model(**attributes).use_transaction(trx)
                created.append(await related.save())
            return created

        return await managed_transaction(self.parent.trx or self.client, run)
