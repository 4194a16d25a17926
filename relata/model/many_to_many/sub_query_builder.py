import itertools
from typing import TYPE_CHECKING, Any

from relata.exceptions import QueryError
from relata.model.many_to_many.pivot_helpers import PivotHelpers, PivotPredicates
from relata.model.postgres.sql.expressions import Eq
from relata.model.postgres.sql.queries import Column, SelectQuery, Table
from relata.model.query_builder import ModelQueryBuilder
from relata.model.transactions import QueryClient

if TYPE_CHECKING:
    from relata.model.relations import ManyToMany


_self_join_counter = itertools.count()


class ManyToManySubQueryBuilder(PivotPredicates, ModelQueryBuilder):
    """
    Correlated sub-query over a many to many relationship, used by
    `where_has` and friends:

        SELECT * FROM skills
        INNER JOIN skill_user ON (skills.id = skill_user.skill_id)
        WHERE (skill_user.user_id = users.id)

    When a model relates to itself the related table is aliased so the
    correlation still points at the outer table. Pivot columns are always
    qualified and never aliased. The builder only composes sql, it cannot be
    executed on its own.
    """
    is_pivot_only_query = False

    def __init__(self, client: QueryClient, relation: "ManyToMany", query: SelectQuery | None = None, self_join_alias: str | None = None):
        self.relation = relation
        self.related_table = relation.related_model().get_table_name()
        self.parent_table = relation.model.get_table_name()
        if self_join_alias is None and self.related_table == self.parent_table:
            self_join_alias = f"adonis_temp_{next(_self_join_counter)}"
        self.self_join_alias = self_join_alias
        super().__init__(relation.related_model(), client, query)
        if query is None and self.self_join_alias:
            self.query.from_(Table(self.related_table, self.self_join_alias))
        self.pivot_helpers = PivotHelpers(self, alias_select_columns=False)

    @property
    def query_table(self) -> str:
        return self.self_join_alias or self.related_table

    def profiler_data(self):
        return {
            "type": self.relation.kind,
            "model": self.relation.model.__name__,
            "pivot_table": self.relation.pivot_table,
            "related_model": self.model.__name__,
        }

    def prefix_related_table(self, column: str) -> str:
        return column if "." in column else f"{self.query_table}.{column}"

    def _qualify(self, column: str) -> str:
        return self.prefix_related_table(column)

    def _child_builder(self) -> "ManyToManySubQueryBuilder":
        child = ManyToManySubQueryBuilder(self.client, self.relation, SelectQuery(), self_join_alias=self.self_join_alias)
        child.is_child_query = True
        return child

    def add_constraints(self):
        relation = self.relation
        pivot_table = Table(relation.pivot_table)
        self.query.inner_join(
            pivot_table,
            Eq(Column(relation.related_key, Table(self.query_table)), Column(relation.pivot_related_foreign_key, pivot_table)),
        )
        self.query.where.and_(
            Eq(Column(relation.pivot_foreign_key, pivot_table), Column(relation.local_key, Table(self.parent_table)))
        )

    def clone(self) -> "ManyToManySubQueryBuilder":
        cloned = ManyToManySubQueryBuilder(self.client, self.relation, self.query.clone(), self_join_alias=self.self_join_alias)
        self._copy_state(cloned)
        return cloned

    def _unsupported(self, operation: str):
        raise QueryError(f"Cannot {operation} a sub-query of relationship \"{self.relation.name}\"")

    def paginate(self, page: int, per_page: int = 20):
        self._unsupported("paginate")

    def exec(self):
        self._unsupported("execute")

    def first(self):
        self._unsupported("execute")

    def update(self, values: dict[str, Any]):
        self._unsupported("update")

    def delete(self):
        self._unsupported("delete")

    def group_limit(self, limit: int):
        self._unsupported("apply group_limit on")

    def group_order_by(self, column: str, direction: str = "desc"):
        self._unsupported("apply group_order_by on")
