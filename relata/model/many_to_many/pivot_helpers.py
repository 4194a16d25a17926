from typing import TYPE_CHECKING, Any

from relata.model.postgres.sql.expressions import IsNull, JsonCompare, Like
from relata.model.postgres.sql.queries import Column
from relata.model.query_builder import _MISSING, Variation

if TYPE_CHECKING:
    from relata.model.many_to_many.query_builder import ManyToManyQueryBuilder
    from relata.model.many_to_many.sub_query_builder import ManyToManySubQueryBuilder


class PivotHelpers:
    """
    Pivot table predicates and selects shared by the many to many query
    builder and its sub-query variant. Bare column names are qualified with
    the pivot table, except on a pivot only query where the pivot table is
    the only table in the query.
    """

    def __init__(self, query: "ManyToManyQueryBuilder | ManyToManySubQueryBuilder", alias_select_columns: bool):
        self.query = query
        self.alias_select_columns = alias_select_columns

    def prefix_pivot_table(self, column: str) -> str:
        if "." in column:
            return column
        if self.query.is_pivot_only_query:
            return column
        return f"{self.query.relation.pivot_table}.{column}"

    def column(self, key: Any) -> Any:
        if isinstance(key, str):
            return Column.parse(self.prefix_pivot_table(key))
        return key

    def where_pivot(self, variation: Variation, key: Any, *args: Any):
        return self.query._add(variation, self.query._build_where(key, args, self.column))

    def where_null_pivot(self, variation: Variation, key: str):
        return self.query._add(variation, IsNull(self.column(key)))

    def where_in_pivot(self, variation: Variation, key: Any, values: Any):
        return self.query._add(variation, self.query._in(self.column(key), values))

    def where_between_pivot(self, variation: Variation, key: Any, values: tuple[Any, Any]):
        return self.query._add(variation, self.query._between(key, values, self.column))

    def where_like_pivot(self, variation: Variation, key: Any, pattern: str, case_insensitive: bool = False):
        like = Like(self.column(key), self.query._value(pattern), case_insensitive=case_insensitive)
        return self.query._add(variation, like)

    def where_json_pivot(self, variation: Variation, key: Any, operator: str, document: Any):
        return self.query._add(variation, JsonCompare(self.column(key), operator, document))

    def where_json_path_pivot(self, variation: Variation, key: Any, path: str, operator: Any, value: Any):
        return self.query._add(variation, self.query._json_path(key, path, operator, value, self.column))

    def pivot_columns(self, columns: list[str]) -> "PivotHelpers":
        relation = self.query.relation
        for column in columns:
            alias = relation.pivot_alias(column) if self.alias_select_columns else None
            self.query.query.columns.append(Column.parse(self.prefix_pivot_table(column), alias=alias))
        return self


class PivotPredicates:
    """Pivot scoped twins of the where methods, delegating to `self.pivot_helpers`."""
    pivot_helpers: PivotHelpers

    def where_pivot(self, key: Any, *args: Any):
        self.pivot_helpers.where_pivot(Variation.AND, key, *args)
        return self

    def or_where_pivot(self, key: Any, *args: Any):
        self.pivot_helpers.where_pivot(Variation.OR, key, *args)
        return self

    def and_where_pivot(self, key: Any, *args: Any):
        return self.where_pivot(key, *args)

    def where_not_pivot(self, key: Any, *args: Any):
        self.pivot_helpers.where_pivot(Variation.NOT, key, *args)
        return self

    def or_where_not_pivot(self, key: Any, *args: Any):
        self.pivot_helpers.where_pivot(Variation.OR_NOT, key, *args)
        return self

    def and_where_not_pivot(self, key: Any, *args: Any):
        return self.where_not_pivot(key, *args)

    def where_in_pivot(self, key: Any, values: Any):
        self.pivot_helpers.where_in_pivot(Variation.AND, key, values)
        return self

    def or_where_in_pivot(self, key: Any, values: Any):
        self.pivot_helpers.where_in_pivot(Variation.OR, key, values)
        return self

    def and_where_in_pivot(self, key: Any, values: Any):
        return self.where_in_pivot(key, values)

    def where_not_in_pivot(self, key: Any, values: Any):
        self.pivot_helpers.where_in_pivot(Variation.NOT, key, values)
        return self

    def or_where_not_in_pivot(self, key: Any, values: Any):
        self.pivot_helpers.where_in_pivot(Variation.OR_NOT, key, values)
        return self

    def and_where_not_in_pivot(self, key: Any, values: Any):
        return self.where_not_in_pivot(key, values)

    def where_null_pivot(self, key: str):
        self.pivot_helpers.where_null_pivot(Variation.AND, key)
        return self

    def or_where_null_pivot(self, key: str):
        self.pivot_helpers.where_null_pivot(Variation.OR, key)
        return self

    def and_where_null_pivot(self, key: str):
        return self.where_null_pivot(key)

    def where_not_null_pivot(self, key: str):
        self.pivot_helpers.where_null_pivot(Variation.NOT, key)
        return self

    def or_where_not_null_pivot(self, key: str):
        self.pivot_helpers.where_null_pivot(Variation.OR_NOT, key)
        return self

    def and_where_not_null_pivot(self, key: str):
        return self.where_not_null_pivot(key)

    def where_between_pivot(self, key: Any, values: tuple[Any, Any]):
        self.pivot_helpers.where_between_pivot(Variation.AND, key, values)
        return self

    def or_where_between_pivot(self, key: Any, values: tuple[Any, Any]):
        self.pivot_helpers.where_between_pivot(Variation.OR, key, values)
        return self

    def and_where_between_pivot(self, key: Any, values: tuple[Any, Any]):
        return self.where_between_pivot(key, values)

    def where_not_between_pivot(self, key: Any, values: tuple[Any, Any]):
        self.pivot_helpers.where_between_pivot(Variation.NOT, key, values)
        return self

    def or_where_not_between_pivot(self, key: Any, values: tuple[Any, Any]):
        self.pivot_helpers.where_between_pivot(Variation.OR_NOT, key, values)
        return self

    def and_where_not_between_pivot(self, key: Any, values: tuple[Any, Any]):
        return self.where_not_between_pivot(key, values)

    def where_like_pivot(self, key: Any, pattern: str):
        self.pivot_helpers.where_like_pivot(Variation.AND, key, pattern)
        return self

    def or_where_like_pivot(self, key: Any, pattern: str):
        self.pivot_helpers.where_like_pivot(Variation.OR, key, pattern)
        return self

    def and_where_like_pivot(self, key: Any, pattern: str):
        return self.where_like_pivot(key, pattern)

    def where_ilike_pivot(self, key: Any, pattern: str):
        self.pivot_helpers.where_like_pivot(Variation.AND, key, pattern, case_insensitive=True)
        return self

    def or_where_ilike_pivot(self, key: Any, pattern: str):
        self.pivot_helpers.where_like_pivot(Variation.OR, key, pattern, case_insensitive=True)
        return self

    def and_where_ilike_pivot(self, key: Any, pattern: str):
        return self.where_ilike_pivot(key, pattern)

    def where_json_pivot(self, key: Any, document: Any):
        self.pivot_helpers.where_json_pivot(Variation.AND, key, "=", document)
        return self

    def or_where_json_pivot(self, key: Any, document: Any):
        self.pivot_helpers.where_json_pivot(Variation.OR, key, "=", document)
        return self

    def and_where_json_pivot(self, key: Any, document: Any):
        return self.where_json_pivot(key, document)

    def where_not_json_pivot(self, key: Any, document: Any):
        self.pivot_helpers.where_json_pivot(Variation.NOT, key, "=", document)
        return self

    def or_where_not_json_pivot(self, key: Any, document: Any):
        self.pivot_helpers.where_json_pivot(Variation.OR_NOT, key, "=", document)
        return self

    def and_where_not_json_pivot(self, key: Any, document: Any):
        return self.where_not_json_pivot(key, document)

    def where_json_superset_pivot(self, key: Any, document: Any):
        self.pivot_helpers.where_json_pivot(Variation.AND, key, "@>", document)
        return self

    def or_where_json_superset_pivot(self, key: Any, document: Any):
        self.pivot_helpers.where_json_pivot(Variation.OR, key, "@>", document)
        return self

    def and_where_json_superset_pivot(self, key: Any, document: Any):
        return self.where_json_superset_pivot(key, document)

    def where_not_json_superset_pivot(self, key: Any, document: Any):
        self.pivot_helpers.where_json_pivot(Variation.NOT, key, "@>", document)
        return self

    def or_where_not_json_superset_pivot(self, key: Any, document: Any):
        self.pivot_helpers.where_json_pivot(Variation.OR_NOT, key, "@>", document)
        return self

    def and_where_not_json_superset_pivot(self, key: Any, document: Any):
        return self.where_not_json_superset_pivot(key, document)

    def where_json_subset_pivot(self, key: Any, document: Any):
        self.pivot_helpers.where_json_pivot(Variation.AND, key, "<@", document)
        return self

    def or_where_json_subset_pivot(self, key: Any, document: Any):
        self.pivot_helpers.where_json_pivot(Variation.OR, key, "<@", document)
        return self

    def and_where_json_subset_pivot(self, key: Any, document: Any):
        return self.where_json_subset_pivot(key, document)

    def where_not_json_subset_pivot(self, key: Any, document: Any):
        self.pivot_helpers.where_json_pivot(Variation.NOT, key, "<@", document)
        return self

    def or_where_not_json_subset_pivot(self, key: Any, document: Any):
        self.pivot_helpers.where_json_pivot(Variation.OR_NOT, key, "<@", document)
        return self

    def and_where_not_json_subset_pivot(self, key: Any, document: Any):
        return self.where_not_json_subset_pivot(key, document)

    def where_json_path_pivot(self, key: Any, path: str, operator: Any, value: Any = _MISSING):
        self.pivot_helpers.where_json_path_pivot(Variation.AND, key, path, operator, value)
        return self

    def or_where_json_path_pivot(self, key: Any, path: str, operator: Any, value: Any = _MISSING):
        self.pivot_helpers.where_json_path_pivot(Variation.OR, key, path, operator, value)
        return self

    def and_where_json_path_pivot(self, key: Any, path: str, operator: Any, value: Any = _MISSING):
        return self.where_json_path_pivot(key, path, operator, value)

    def pivot_columns(self, columns: list[str]):
        self.pivot_helpers.pivot_columns(columns)
        return self
