import logging
import os
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Generator, Generic, List, Type, TypeVar

from relata.exceptions import QueryError
from relata.model.postgres.sql.compiler import compile_query
from relata.model.postgres.sql.expressions import (
    And, Between, Eq, Exists, Expression, Function, In, IsNull, JsonCompare, JsonPath, Like, Not, OrderBy,
    RawValue, WhereClause, compare, param,
)
from relata.model.postgres.sql.queries import Column, DeleteQuery, SelectQuery, Subquery, Table, UpdateQuery
from relata.model.transactions import QueryClient
from relata.paginator import SimplePaginator

if TYPE_CHECKING:
    from relata.model.model import Model

logger = logging.getLogger(__name__)

MODEL = TypeVar("MODEL", bound="Model")

_MISSING = object()


class Variation(Enum):
    """How a predicate is combined with the ones already on the query."""
    AND = "and"
    OR = "or"
    NOT = "not"
    OR_NOT = "or_not"


def _and(where: WhereClause, expr: Expression):
    where.and_(expr)


def _or(where: WhereClause, expr: Expression):
    where.or_(expr)


def _and_not(where: WhereClause, expr: Expression):
    where.and_(Not(expr))


def _or_not(where: WhereClause, expr: Expression):
    where.or_(Not(expr))


COMBINERS: dict[Variation, Callable[[WhereClause, Expression], None]] = {
    Variation.AND: _and,
    Variation.OR: _or,
    Variation.NOT: _and_not,
    Variation.OR_NOT: _or_not,
}


class ConstraintState(Enum):
    UNCONSTRAINED = "unconstrained"
    CONSTRAINED = "constrained"


def debug_queries_default() -> bool:
    return os.environ.get("RELATA_DEBUG_QUERIES", "").lower() in ("1", "true", "yes")


class ModelQueryBuilder(Generic[MODEL]):
    """
    Query builder bound to a model and a client.

    Predicates follow the usual call shapes:

        query.where("status", "active")
        query.where("age", ">", 18)
        query.where({"status": "active", "role": "admin"})
        query.where(lambda q: q.where("a", 1).or_where("b", 2))
        query.where(Gt(Column("a"), Column("b")))

    Relation builders change which table bare column names belong to by
    overriding `_qualify`, and scope the query to the relation in
    `add_constraints`. Constraints are added once, on the first execution,
    clone or `apply_constraints()` call.
    """

    def __init__(self, model: Type[MODEL], client: QueryClient, query: SelectQuery | None = None):
        self.model = model
        self.client = client
        self.query = query if query is not None else SelectQuery().from_(Table(model.get_table_name()))
        self.constraint_state = ConstraintState.UNCONSTRAINED
        self.has_aggregates = False
        self.cherry_picking_keys = False
        self.is_child_query = False
        self.is_related_preload_query = False
        self.wrap_results_to_model_instances = True
        self.debug_queries = debug_queries_default()
        self.custom_reporter_data: dict[str, Any] | None = None
        self.group_constraints: dict[str, Any] = {"limit": None, "order_by": None}
        self._action = "select"
        self._row_transformers: list[Callable[[MODEL], None]] = []
        self._preloads: list[tuple[str, Callable | None]] = []

    # ------------------------------------------------------------------
    # constraints
    # ------------------------------------------------------------------

    def query_action(self) -> str:
        """`select`, `update` or `delete`, depending on how the query is executed."""
        return self._action

    def apply_constraints(self) -> "ModelQueryBuilder[MODEL]":
        if self.constraint_state is ConstraintState.CONSTRAINED:
            return self
        self.constraint_state = ConstraintState.CONSTRAINED
        self.add_constraints()
        return self

    def add_constraints(self):
        """Scope the query, called once per builder."""

    @property
    def has_group_by(self) -> bool:
        return bool(self.query.group_by)

    # ------------------------------------------------------------------
    # column resolution
    # ------------------------------------------------------------------

    def _qualify(self, column: str) -> str:
        return column

    def _column(self, key: Any) -> Any:
        if isinstance(key, str):
            return Column.parse(self._qualify(key))
        return key

    def _value(self, value: Any) -> Any:
        if isinstance(value, ModelQueryBuilder):
            value.apply_constraints()
            return value.query
        if isinstance(value, (Expression, Column, SelectQuery)):
            return value
        return param(value)

    def _subquery(self, value: Any) -> SelectQuery:
        if isinstance(value, ModelQueryBuilder):
            value.apply_constraints()
            return value.query
        if isinstance(value, SelectQuery):
            return value
        raise TypeError(f"Expected a query builder or select query, got {type(value).__name__}")

    def _child_builder(self) -> "ModelQueryBuilder":
        """Builder handed to grouping callbacks, only its where clause is used."""
        child = ModelQueryBuilder(self.model, self.client, SelectQuery())
        child.is_child_query = True
        return child

    # ------------------------------------------------------------------
    # predicates
    # ------------------------------------------------------------------

    def _add(self, variation: Variation, expr: Expression | None) -> "ModelQueryBuilder[MODEL]":
        if expr is not None:
            COMBINERS[variation](self.query.where, expr)
        return self

    def _build_where(self, key: Any, args: tuple, column: Callable[[Any], Any]) -> Expression | None:
        if isinstance(key, Expression):
            if args:
                raise TypeError("A raw expression takes no operator or value")
            return key
        if isinstance(key, dict):
            conditions = [Eq(column(name), self._value(value)) for name, value in key.items()]
            if not conditions:
                return None
            return conditions[0] if len(conditions) == 1 else And(*conditions)
        if callable(key):
            child = self._child_builder()
            key(child)
            return child.query.where.condition
        if len(args) == 1:
            return Eq(column(key), self._value(args[0]))
        if len(args) == 2:
            operator, value = args
            return compare(column(key), operator, self._value(value))
        raise TypeError(f"where() takes a key with a value or an operator and a value, got {len(args)} arguments")

    def _in(self, column: Any, values: Any) -> In:
        if isinstance(values, (ModelQueryBuilder, SelectQuery)):
            return In(column, self._subquery(values))
        return In(column, list(values))

    def where(self, key: Any, *args: Any):
        return self._add(Variation.AND, self._build_where(key, args, self._column))

    def or_where(self, key: Any, *args: Any):
        return self._add(Variation.OR, self._build_where(key, args, self._column))

    def and_where(self, key: Any, *args: Any):
        return self.where(key, *args)

    def where_not(self, key: Any, *args: Any):
        return self._add(Variation.NOT, self._build_where(key, args, self._column))

    def or_where_not(self, key: Any, *args: Any):
        return self._add(Variation.OR_NOT, self._build_where(key, args, self._column))

    def and_where_not(self, key: Any, *args: Any):
        return self.where_not(key, *args)

    def where_in(self, key: Any, values: Any):
        return self._add(Variation.AND, self._in(self._column(key), values))

    def or_where_in(self, key: Any, values: Any):
        return self._add(Variation.OR, self._in(self._column(key), values))

    def and_where_in(self, key: Any, values: Any):
        return self.where_in(key, values)

    def where_not_in(self, key: Any, values: Any):
        return self._add(Variation.NOT, self._in(self._column(key), values))

    def or_where_not_in(self, key: Any, values: Any):
        return self._add(Variation.OR_NOT, self._in(self._column(key), values))

    def and_where_not_in(self, key: Any, values: Any):
        return self.where_not_in(key, values)

    def where_null(self, key: Any):
        return self._add(Variation.AND, IsNull(self._column(key)))

    def or_where_null(self, key: Any):
        return self._add(Variation.OR, IsNull(self._column(key)))

    def and_where_null(self, key: Any):
        return self.where_null(key)

    def where_not_null(self, key: Any):
        return self._add(Variation.NOT, IsNull(self._column(key)))

    def or_where_not_null(self, key: Any):
        return self._add(Variation.OR_NOT, IsNull(self._column(key)))

    def and_where_not_null(self, key: Any):
        return self.where_not_null(key)

    def _between(self, key: Any, values: tuple[Any, Any], column: Callable[[Any], Any] | None = None) -> Between:
        lower, upper = values
        return Between((column or self._column)(key), self._value(lower), self._value(upper))

    def where_between(self, key: Any, values: tuple[Any, Any]):
        return self._add(Variation.AND, self._between(key, values))

    def or_where_between(self, key: Any, values: tuple[Any, Any]):
        return self._add(Variation.OR, self._between(key, values))

    def and_where_between(self, key: Any, values: tuple[Any, Any]):
        return self.where_between(key, values)

    def where_not_between(self, key: Any, values: tuple[Any, Any]):
        return self._add(Variation.NOT, self._between(key, values))

    def or_where_not_between(self, key: Any, values: tuple[Any, Any]):
        return self._add(Variation.OR_NOT, self._between(key, values))

    def and_where_not_between(self, key: Any, values: tuple[Any, Any]):
        return self.where_not_between(key, values)

    def where_like(self, key: Any, pattern: str):
        return self._add(Variation.AND, Like(self._column(key), self._value(pattern)))

    def or_where_like(self, key: Any, pattern: str):
        return self._add(Variation.OR, Like(self._column(key), self._value(pattern)))

    def and_where_like(self, key: Any, pattern: str):
        return self.where_like(key, pattern)

    def where_ilike(self, key: Any, pattern: str):
        return self._add(Variation.AND, Like(self._column(key), self._value(pattern), case_insensitive=True))

    def or_where_ilike(self, key: Any, pattern: str):
        return self._add(Variation.OR, Like(self._column(key), self._value(pattern), case_insensitive=True))

    def and_where_ilike(self, key: Any, pattern: str):
        return self.where_ilike(key, pattern)

    def where_json(self, key: Any, document: Any):
        return self._add(Variation.AND, JsonCompare(self._column(key), "=", document))

    def or_where_json(self, key: Any, document: Any):
        return self._add(Variation.OR, JsonCompare(self._column(key), "=", document))

    def and_where_json(self, key: Any, document: Any):
        return self.where_json(key, document)

    def where_not_json(self, key: Any, document: Any):
        return self._add(Variation.NOT, JsonCompare(self._column(key), "=", document))

    def or_where_not_json(self, key: Any, document: Any):
        return self._add(Variation.OR_NOT, JsonCompare(self._column(key), "=", document))

    def and_where_not_json(self, key: Any, document: Any):
        return self.where_not_json(key, document)

    def where_json_superset(self, key: Any, document: Any):
        return self._add(Variation.AND, JsonCompare(self._column(key), "@>", document))

    def or_where_json_superset(self, key: Any, document: Any):
        return self._add(Variation.OR, JsonCompare(self._column(key), "@>", document))

    def and_where_json_superset(self, key: Any, document: Any):
        return self.where_json_superset(key, document)

    def where_not_json_superset(self, key: Any, document: Any):
        return self._add(Variation.NOT, JsonCompare(self._column(key), "@>", document))

    def or_where_not_json_superset(self, key: Any, document: Any):
        return self._add(Variation.OR_NOT, JsonCompare(self._column(key), "@>", document))

    def and_where_not_json_superset(self, key: Any, document: Any):
        return self.where_not_json_superset(key, document)

    def where_json_subset(self, key: Any, document: Any):
        return self._add(Variation.AND, JsonCompare(self._column(key), "<@", document))

    def or_where_json_subset(self, key: Any, document: Any):
        return self._add(Variation.OR, JsonCompare(self._column(key), "<@", document))

    def and_where_json_subset(self, key: Any, document: Any):
        return self.where_json_subset(key, document)

    def where_not_json_subset(self, key: Any, document: Any):
        return self._add(Variation.NOT, JsonCompare(self._column(key), "<@", document))

    def or_where_not_json_subset(self, key: Any, document: Any):
        return self._add(Variation.OR_NOT, JsonCompare(self._column(key), "<@", document))

    def and_where_not_json_subset(self, key: Any, document: Any):
        return self.where_not_json_subset(key, document)

    def _json_path(
        self, key: Any, path: str, operator: Any, value: Any, column: Callable[[Any], Any] | None = None
    ) -> JsonPath:
        if value is _MISSING:
            operator, value = "=", operator
        return JsonPath((column or self._column)(key), path, operator, self._value(value))

    def where_json_path(self, key: Any, path: str, operator: Any, value: Any = _MISSING):
        return self._add(Variation.AND, self._json_path(key, path, operator, value))

    def or_where_json_path(self, key: Any, path: str, operator: Any, value: Any = _MISSING):
        return self._add(Variation.OR, self._json_path(key, path, operator, value))

    def and_where_json_path(self, key: Any, path: str, operator: Any, value: Any = _MISSING):
        return self.where_json_path(key, path, operator, value)

    def where_exists(self, query: Any):
        return self._add(Variation.AND, Exists(self._subquery(query)))

    def or_where_exists(self, query: Any):
        return self._add(Variation.OR, Exists(self._subquery(query)))

    def where_not_exists(self, query: Any):
        return self._add(Variation.NOT, Exists(self._subquery(query)))

    def or_where_not_exists(self, query: Any):
        return self._add(Variation.OR_NOT, Exists(self._subquery(query)))

    def _where_has(self, variation: Variation, relation_name: str, callback: Callable | None):
        sub_query = self.model.get_relation(relation_name).sub_query(self.client)
        if callback is not None:
            callback(sub_query)
        return self._add(variation, Exists(self._subquery(sub_query)))

    def where_has(self, relation_name: str, callback: Callable | None = None):
        """Rows having at least one related row, optionally constrained by `callback`."""
        return self._where_has(Variation.AND, relation_name, callback)

    def or_where_has(self, relation_name: str, callback: Callable | None = None):
        return self._where_has(Variation.OR, relation_name, callback)

    def where_doesnt_have(self, relation_name: str, callback: Callable | None = None):
        return self._where_has(Variation.NOT, relation_name, callback)

    def or_where_doesnt_have(self, relation_name: str, callback: Callable | None = None):
        return self._where_has(Variation.OR_NOT, relation_name, callback)

    # ------------------------------------------------------------------
    # query shape
    # ------------------------------------------------------------------

    def _select_column(self, column: Any) -> Any:
        if not isinstance(column, str):
            return column
        name, _, alias = column.partition(" as ")
        return Column.parse(self._qualify(name.strip()), alias=alias.strip() or None)

    def select(self, *columns: Any):
        if len(columns) == 1 and isinstance(columns[0], (list, tuple)):
            columns = tuple(columns[0])
        self.cherry_picking_keys = True
        self.query.columns.extend(self._select_column(column) for column in columns)
        return self

    def from_(self, table: Any, alias: str | None = None):
        if isinstance(table, ModelQueryBuilder):
            table.apply_constraints()
            table = table.query
        if isinstance(table, SelectQuery):
            table = Subquery(table, alias or table.alias or "subquery")
        elif isinstance(table, str):
            table = Table(table, alias)
        self.query.from_(table)
        return self

    def _join_condition(self, first: Any, args: tuple) -> Expression:
        if isinstance(first, Expression):
            return first
        if len(args) == 1:
            return Eq(Column.parse(first), Column.parse(args[0]))
        operator, second = args
        return compare(Column.parse(first), operator, Column.parse(second))

    def inner_join(self, table: str | Table, first: Any, *args: Any):
        table = Table(table) if isinstance(table, str) else table
        self.query.inner_join(table, self._join_condition(first, args))
        return self

    def left_join(self, table: str | Table, first: Any, *args: Any):
        table = Table(table) if isinstance(table, str) else table
        self.query.left_join(table, self._join_condition(first, args))
        return self

    def order_by(self, column: Any, direction: str | None = None):
        """Order by `column`. A leading `-` sorts descending when no direction is given."""
        if direction is None:
            direction = "asc"
            if isinstance(column, str) and column.startswith("-"):
                column, direction = column[1:], "desc"
        self.query.order_by.append(OrderBy(self._column(column), direction))
        return self

    def group_by(self, *columns: Any):
        self.query.group_by.extend(self._column(column) for column in columns)
        return self

    def limit(self, count: int):
        self.query.limit_(count)
        return self

    def offset(self, count: int):
        self.query.offset_(count)
        return self

    def for_page(self, page: int, per_page: int = 20):
        offset = (page - 1) * per_page if page > 0 else 0
        return self.offset(offset).limit(per_page)

    def count(self, column: str = "*", alias: str | None = None):
        self.has_aggregates = True
        target = RawValue("*") if column == "*" else self._column(column)
        self.query.columns.append(Function("COUNT", target, alias=alias))
        return self

    # ------------------------------------------------------------------
    # result handling
    # ------------------------------------------------------------------

    def pojo(self):
        """Return plain dict rows instead of model instances."""
        self.wrap_results_to_model_instances = False
        return self

    def row_transformer(self, transformer: Callable[[MODEL], None]):
        self._row_transformers.append(transformer)
        return self

    def preload(self, relation_name: str, callback: Callable | None = None):
        self.model.get_relation(relation_name)
        self._preloads.append((relation_name, callback))
        return self

    def group_limit(self, limit: int):
        """Limit the rows per parent when the query preloads a relation for many parents."""
        self.group_constraints["limit"] = limit
        return self

    def group_order_by(self, column: str, direction: str = "desc"):
        self.group_constraints["order_by"] = {"column": column, "direction": direction}
        return self

    def get_group_limit_query(self) -> "ModelQueryBuilder":
        raise QueryError(f"group_limit is not supported by {type(self).__name__}")

    def debug(self, enabled: bool = True):
        self.debug_queries = enabled
        return self

    def reporter_data(self, data: dict[str, Any] | None):
        self.custom_reporter_data = data
        return self

    def profiler_data(self) -> dict[str, Any]:
        return {"model": self.model.__name__}

    def _log_query(self, sql: str, params: list):
        if self.debug_queries:
            logger.info("query: %s params: %s reporter: %s", sql, params, {**self.profiler_data(), **(self.custom_reporter_data or {})})

    # ------------------------------------------------------------------
    # execution
    # ------------------------------------------------------------------

    def to_sql(self) -> tuple[str, list]:
        self.apply_constraints()
        return compile_query(self.query)

    def _copy_state(self, other: "ModelQueryBuilder"):
        other.constraint_state = self.constraint_state
        other.has_aggregates = self.has_aggregates
        other.cherry_picking_keys = self.cherry_picking_keys
        other.is_child_query = self.is_child_query
        other.is_related_preload_query = self.is_related_preload_query
        other.wrap_results_to_model_instances = self.wrap_results_to_model_instances
        other.group_constraints = dict(self.group_constraints)
        other._action = self._action
        other._row_transformers = list(self._row_transformers)
        other._preloads = list(self._preloads)
        other.debug(self.debug_queries)
        other.reporter_data(self.custom_reporter_data)

    def clone(self) -> "ModelQueryBuilder[MODEL]":
        cloned = ModelQueryBuilder(self.model, self.client, self.query.clone())
        self._copy_state(cloned)
        return cloned

    async def _hydrate(self, rows: list[dict]) -> list:
        if not self.wrap_results_to_model_instances:
            return rows
        models = [self.model.from_row(row) for row in rows]
        for model in models:
            if getattr(self.client, "is_transaction", False):
                model.use_transaction(self.client)
            for transformer in self._row_transformers:
                transformer(model)
        for relation_name, callback in self._preloads:
            await self.model.get_relation(relation_name).eager_load(models, self.client, callback)
        return models

    async def exec(self) -> List[MODEL]:
        self.apply_constraints()
        if self.group_constraints["limit"] is not None and self.is_related_preload_query:
            return await self.get_group_limit_query().exec()
        sql, params = compile_query(self.query)
        self._log_query(sql, params)
        rows = await self.client.fetch(sql, *params)
        return await self._hydrate(rows)

    async def first(self) -> MODEL | None:
        results = await self.limit(1).exec()
        return results[0] if results else None

    async def update(self, values: dict[str, Any]) -> Any:
        self._action = "update"
        self.apply_constraints()
        query = UpdateQuery(self.query.from_table).set(
            [(Column(name), self._value(value)) for name, value in values.items()]
        )
        query.where = self.query.where.copy()
        sql, params = compile_query(query)
        self._log_query(sql, params)
        return await self.client.execute(sql, *params)

    async def delete(self) -> Any:
        self._action = "delete"
        self.apply_constraints()
        query = DeleteQuery(self.query.from_table)
        query.where = self.query.where.copy()
        sql, params = compile_query(query)
        self._log_query(sql, params)
        return await self.client.execute(sql, *params)

    def _count_query(self) -> SelectQuery:
        counter = self.clone()
        query = counter.query
        query.order_by = []
        query.limit = None
        query.offset = None
        total = Function("COUNT", RawValue("*"), alias="total")
        if query.group_by or query.distinct:
            # count the groups (or distinct rows), not the rows behind them
            if query.group_by:
                query.columns = list(query.group_by)
            return SelectQuery().from_(Subquery(query, "subquery")).select(total)
        return query.select(total)

    async def paginate(self, page: int, per_page: int = 20) -> SimplePaginator:
        """Run a count query, then fetch the rows for `page`."""
        sql, params = compile_query(self._count_query())
        self._log_query(sql, params)
        row = await self.client.fetch_one(sql, *params)
        total = int(row["total"]) if row else 0
        rows = await self.for_page(page, per_page).exec() if total > 0 else []
        return SimplePaginator(total, per_page, page, *rows)

    def __await__(self) -> Generator[Any, None, List[MODEL]]:
        return self.exec().__await__()
