import re

from relata.model.postgres.sql.joins import Join
from relata.model.postgres.sql.expressions import Expression, WhereClause


class Table:
    def __init__(self, name, alias=None):
        self.name = name
        self.alias = alias

    def __str__(self):
        return self.alias or self.name

    def __repr__(self):
        return f"<Table {self.name} AS {self.alias}>" if self.alias else f"<Table {self.name}>"


def is_camel_case(name: str) -> bool:
    return bool(re.fullmatch(r'[a-z]+(?:[A-Z][a-z]*)+', name))


class Column:
    def __init__(self, name, table=None, alias=None):
        # camel case columns must be quoted or postgres folds them to lower case
        self.name = name if not is_camel_case(name) else f'"{name}"'
        self.table = table
        self.alias = alias

    @classmethod
    def parse(cls, ref: str, alias=None) -> "Column":
        """Build a column from a `table.column` or bare `column` reference."""
        if "." in ref:
            table, name = ref.rsplit(".", 1)
            return cls(name, Table(table), alias=alias)
        return cls(ref, alias=alias)

    def __str__(self):
        prefix = f"{str(self.table)}." if self.table else ""
        base = f"{prefix}{self.name}"
        return f"{base} AS {self.alias}" if self.alias else base

    def __repr__(self):
        return str(self)


class SelectQuery:
    def __init__(self):
        self.columns = []
        self.from_table = None
        self.joins = []
        self.where = WhereClause()
        self.group_by = []
        self.having = None
        self.order_by = []
        self.limit = None
        self.offset = None
        self.distinct = False
        self.alias = None

    def clone(self) -> "SelectQuery":
        """Copy the query so both sides can be mutated independently."""
        new_query = SelectQuery()
        new_query.columns = list(self.columns)
        new_query.from_table = self.from_table
        new_query.joins = list(self.joins)
        new_query.where = self.where.copy()
        new_query.group_by = list(self.group_by)
        new_query.having = self.having
        new_query.order_by = list(self.order_by)
        new_query.limit = self.limit
        new_query.offset = self.offset
        new_query.distinct = self.distinct
        new_query.alias = self.alias
        return new_query

    def join(self, table, condition, join_type='LEFT', alias=None):
        self.joins.append(Join(table, condition, join_type, alias))
        return self

    def left_join(self, table, condition, alias=None):
        return self.join(table, condition, 'LEFT', alias)

    def right_join(self, table, condition, alias=None):
        return self.join(table, condition, 'RIGHT', alias)

    def inner_join(self, table, condition, alias=None):
        return self.join(table, condition, 'INNER', alias)

    def select(self, *columns):
        self.columns = list(columns)
        return self

    def from_(self, table):
        self.from_table = table
        return self

    def group_by_(self, *cols):
        self.group_by = list(cols)
        return self

    def order_by_(self, *cols):
        self.order_by = list(cols)
        return self

    def limit_(self, count):
        self.limit = count
        return self

    def offset_(self, count):
        self.offset = count
        return self

    def distinct_(self, enabled=True):
        self.distinct = enabled
        return self


class Subquery:
    def __init__(self, query: SelectQuery, alias: str):
        self.query = query
        self.alias = alias

    def __str__(self):
        return self.alias


class InsertQuery:
    def __init__(self, table):
        self.table = table
        self.columns = []
        self.values = []  # List of rows (each row is a list of values)
        self.returning = []


class UpdateQuery:
    def __init__(self, table):
        self.table = table
        self.set_clauses = []
        self.where = WhereClause()
        self.returning = []

    def set(self, values: list[tuple[Column, Expression]]):
        self.set_clauses = values
        return self


class DeleteQuery:
    def __init__(self, table):
        self.table = table
        self.where = WhereClause()
        self.returning = []
