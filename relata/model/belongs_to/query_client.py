from typing import TYPE_CHECKING

from relata.model.postgres.sql.expressions import Eq
from relata.model.postgres.sql.queries import Column, Table
from relata.model.query_builder import ModelQueryBuilder
from relata.model.relations import get_key_value, get_value, unique
from relata.model.transactions import QueryClient, managed_transaction

if TYPE_CHECKING:
    from relata.model.model import Model
    from relata.model.relations import BelongsTo


class BelongsToQueryClient:
    """Query client for executing queries in scope to the belongs to relationship."""

    def __init__(self, relation: "BelongsTo", parent: "Model", client: QueryClient):
        self.relation = relation
        self.parent = parent
        self.client = client

    @staticmethod
    def for_query(client: QueryClient, relation: "BelongsTo", rows: "Model | list[Model]") -> ModelQueryBuilder:
        query = ModelQueryBuilder(relation.related_model(), client)
        if isinstance(rows, list):
            # parents without a foreign key have nothing to load
            values = unique([value for value in (get_key_value(row, relation.foreign_key) for row in rows) if value is not None])
            query.where_in(relation.local_key, values)
        else:
            query.where(relation.local_key, get_value(rows, relation.foreign_key, relation, "query"))
        return relation.apply_query_hook(query)

    @staticmethod
    def eager_query(client: QueryClient, relation: "BelongsTo", rows: "list[Model]") -> ModelQueryBuilder:
        query = BelongsToQueryClient.for_query(client, relation, rows)
        query.is_related_preload_query = True
        return query

    @staticmethod
    def sub_query(client: QueryClient, relation: "BelongsTo") -> ModelQueryBuilder:
        related_table = Table(relation.related_model().get_table_name())
        query = ModelQueryBuilder(relation.related_model(), client)
        query.where(Eq(Column(relation.local_key, related_table), Column(relation.foreign_key, Table(relation.model.get_table_name()))))
        return relation.apply_query_hook(query)

    def query(self) -> ModelQueryBuilder:
        return BelongsToQueryClient.for_query(self.client, self.relation, self.parent)

    async def associate(self, related: "Model") -> None:
        """
        Associate the related model with the parent. The related model is
        saved first so its key can be copied onto the parent, both writes
        share one transaction.
        """
        parent_state = self.parent._snapshot()
        related_state = related._snapshot()

        async def run(trx):
            related.use_transaction(trx)
            await related.save()

            self.relation.hydrate_for_persistence(self.parent, related)
            self.parent.use_transaction(trx)
            await self.parent.save()

        try:
            await managed_transaction(self.parent.trx or self.client, run)
        except Exception:
            # neither record keeps keys or state written by the rolled back transaction
            self.parent._restore(parent_state)
            related._restore(related_state)
            raise
        self.parent.set_related(self.relation.name, related)

    async def dissociate(self) -> None:
        """Drop the association, a single update of the parent."""
        setattr(self.parent, self.relation.foreign_key, None)
        await self.parent.save()
