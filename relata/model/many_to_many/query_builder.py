from typing import TYPE_CHECKING

from relata.exceptions import PreloadPaginationError
from relata.model.many_to_many.pivot_helpers import PivotHelpers, PivotPredicates
from relata.model.postgres.sql.expressions import Eq, RawValue
from relata.model.postgres.sql.queries import Column, SelectQuery, Table
from relata.model.query_builder import MODEL, ModelQueryBuilder, Variation
from relata.model.relations import get_value, unique
from relata.model.transactions import QueryClient
from relata.paginator import SimplePaginator
from relata.utils.datetime_utils import normalize_timestamp

if TYPE_CHECKING:
    from relata.model.model import Model
    from relata.model.relations import ManyToMany


GROUP_LIMIT_COUNTER = "adonis_group_limit_counter"
GROUP_LIMIT_ALIAS = "adonis_temp"


class ManyToManyQueryBuilder(PivotPredicates, ModelQueryBuilder[MODEL]):
    """
    Query builder scoped to a many to many relationship.

    Queries the related table joined with the pivot table. Bare column names
    passed to the where methods, `order_by` and `select` belong to the related
    table, the `*_pivot` methods and `pivot_columns` target the pivot table.

    `parent` is one model, or a list of models when eager loading the
    relation for many parents at once.
    """

    def __init__(self, client: QueryClient, parent: "Model | list[Model]", relation: "ManyToMany", query: SelectQuery | None = None):
        self.relation = relation
        self.parent = parent
        self.related_table = relation.related_model().get_table_name()
        self._pivot_only = False
        super().__init__(relation.related_model(), client, query)
        self.pivot_helpers = PivotHelpers(self, alias_select_columns=True)
        if relation.pivot_timestamps:
            self.row_transformer(self._normalize_pivot_timestamps)

    @property
    def is_pivot_only_query(self) -> bool:
        return self._pivot_only

    @is_pivot_only_query.setter
    def is_pivot_only_query(self, pivot_only: bool):
        self._pivot_only = pivot_only
        # rows of the pivot table are not related models
        if pivot_only:
            self.pojo()

    def profiler_data(self):
        return {
            "type": self.relation.kind,
            "model": self.relation.model.__name__,
            "pivot_table": self.relation.pivot_table,
            "related_model": self.model.__name__,
        }

    def prefix_related_table(self, column: str) -> str:
        return column if "." in column else f"{self.related_table}.{column}"

    def _qualify(self, column: str) -> str:
        if self.is_pivot_only_query:
            return column
        return self.prefix_related_table(column)

    def _child_builder(self) -> "ManyToManyQueryBuilder":
        child = ManyToManyQueryBuilder(self.client, self.parent, self.relation, SelectQuery())
        child.is_child_query = True
        child.is_pivot_only_query = self.is_pivot_only_query
        child.is_related_preload_query = self.is_related_preload_query
        return child

    def _add_where_constraints(self):
        action = self.query_action()
        relation = self.relation

        # eager query, one IN list for all the parents
        if isinstance(self.parent, list):
            values = unique([get_value(parent, relation.local_key, relation, action) for parent in self.parent])
            self.pivot_helpers.where_in_pivot(Variation.AND, relation.pivot_foreign_key, values)
            return

        value = get_value(self.parent, relation.local_key, relation, action)
        self.pivot_helpers.where_pivot(Variation.AND, relation.pivot_foreign_key, value)

    def add_constraints(self):
        relation = self.relation

        # update and delete cannot run against a join, they target the pivot rows
        if self.is_pivot_only_query or self.query_action() in ("update", "delete"):
            self.from_(relation.pivot_table)
            self._add_where_constraints()
            return

        if not self.has_aggregates:
            if not self.cherry_picking_keys:
                self.select("*")
            self.pivot_columns(
                [relation.pivot_foreign_key, relation.pivot_related_foreign_key]
                + relation.pivot_columns
                + relation.pivot_timestamps
            )

        pivot_table = Table(relation.pivot_table)
        self.query.inner_join(
            pivot_table,
            Eq(Column(relation.related_key, Table(self.related_table)), Column(relation.pivot_related_foreign_key, pivot_table)),
        )
        self._add_where_constraints()

    def clone(self) -> "ManyToManyQueryBuilder[MODEL]":
        self.apply_constraints()
        cloned = ManyToManyQueryBuilder(self.client, self.parent, self.relation, self.query.clone())
        cloned.is_pivot_only_query = self.is_pivot_only_query
        self._copy_state(cloned)
        return cloned

    async def paginate(self, page: int, per_page: int = 20) -> SimplePaginator:
        if self.is_related_preload_query:
            raise PreloadPaginationError(self.relation.name)
        self.apply_constraints()
        return await super().paginate(page, per_page)

    def _normalize_pivot_timestamps(self, row: "Model"):
        for timestamp in self.relation.pivot_timestamps:
            alias = self.relation.pivot_alias(timestamp)
            if alias in row.extras:
                row.extras[alias] = normalize_timestamp(row.extras[alias])

    def get_group_limit_query(self) -> ModelQueryBuilder:
        """
        Query returning at most `group_limit` related rows per parent. The
        rows are numbered per pivot foreign key inside a sub-query and
        filtered on that number.
        """
        order = self.group_constraints["order_by"] or {
            "column": self.model.get_primary_key(),
            "direction": "desc",
        }
        partition_by = f"PARTITION BY {self.pivot_helpers.prefix_pivot_table(self.relation.pivot_foreign_key)}"
        order_by = f"ORDER BY {self.prefix_related_table(order['column'])} {order['direction']}"

        source = self.clone()
        if not source.query.columns:
            source.select("*")
        source.query.columns.append(RawValue(f"row_number() over ({partition_by} {order_by}) as {GROUP_LIMIT_COUNTER}"))
        source.query.alias = GROUP_LIMIT_ALIAS

        group_query = ModelQueryBuilder(self.model, self.client)
        group_query.wrap_results_to_model_instances = self.wrap_results_to_model_instances
        group_query._row_transformers = list(self._row_transformers)
        group_query._preloads = list(self._preloads)
        group_query.debug(self.debug_queries)
        group_query.reporter_data(self.custom_reporter_data)
        return group_query.from_(source.query).where(GROUP_LIMIT_COUNTER, "<=", self.group_constraints["limit"])
