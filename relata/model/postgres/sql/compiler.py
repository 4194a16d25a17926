import json

from relata.model.postgres.sql.expressions import (
    BinaryExpression, Exists, Expression, JsonCompare, JsonPath, RawSQL, RawValue, Value,
    And, Or, Not, IsNull, In, Between, Like, Function, OrderBy,
)
from relata.model.postgres.sql.queries import Column, DeleteQuery, InsertQuery, SelectQuery, Subquery, Table, UpdateQuery


class Compiler:
    """
    Compiles the query tree into a single line of postgres sql with `$n`
    positional parameters. One compiler instance is used per statement so
    nested sub-queries keep numbering their parameters.
    """
    def __init__(self):
        self.params = []
        self.param_counter = 1

    def compile(self, query):
        if isinstance(query, SelectQuery):
            sql = self._compile_select(query)
        elif isinstance(query, InsertQuery):
            sql = self._compile_insert(query)
        elif isinstance(query, UpdateQuery):
            sql = self._compile_update(query)
        elif isinstance(query, DeleteQuery):
            sql = self._compile_delete(query)
        else:
            raise TypeError(f"Unsupported query type: {type(query)}")

        return sql, self.params

    def add_param(self, value):
        self.params.append(value)
        placeholder = f"${self.param_counter}"
        self.param_counter += 1
        return placeholder

    def compile_expr(self, expr):
        if isinstance(expr, Column):
            table_prefix = f"{expr.table}." if expr.table else ""
            base = f"{table_prefix}{expr.name}"
            return f"{base} AS {expr.alias}" if expr.alias else base

        elif isinstance(expr, Value):
            if expr.value == "*":
                return "*"
            elif expr.inline:
                if expr.no_quote:
                    return str(expr.value)
                return repr(expr.value)
            else:
                return self.add_param(expr.value)
        elif isinstance(expr, RawValue):
            return expr.value
        elif isinstance(expr, RawSQL):
            return self._compile_raw(expr)
        elif isinstance(expr, BinaryExpression):
            left = self.compile_expr(expr.left)
            right = self.compile_expr(expr.right)
            return f"({left} {expr.operator} {right})"

        elif isinstance(expr, And):
            return f"({' AND '.join(self.compile_expr(c) for c in expr.conditions)})"

        elif isinstance(expr, Or):
            return f"({' OR '.join(self.compile_expr(c) for c in expr.conditions)})"

        elif isinstance(expr, Not):
            return f"(NOT {self.compile_expr(expr.condition)})"

        elif isinstance(expr, IsNull):
            return f"({self.compile_expr(expr.value)} IS NULL)"

        elif isinstance(expr, In):
            val = self.compile_expr(expr.value)
            if isinstance(expr.options, SelectQuery):
                return f"({val} IN {self.compile_expr(expr.options)})"
            if not expr.options:
                # postgres rejects an empty IN list
                return "(1 = 0)"
            options = ', '.join(self.add_param(opt) for opt in expr.options)
            return f"({val} IN ({options}))"

        elif isinstance(expr, Between):
            val = self.compile_expr(expr.value)
            lower = self.compile_expr(expr.lower)
            upper = self.compile_expr(expr.upper)
            return f"({val} BETWEEN {lower} AND {upper})"

        elif isinstance(expr, Like):
            val = self.compile_expr(expr.value)
            pattern = self.compile_expr(expr.pattern)
            keyword = "ILIKE" if expr.case_insensitive else "LIKE"
            return f"({val} {keyword} {pattern})"

        elif isinstance(expr, JsonCompare):
            val = self.compile_expr(expr.value)
            document = self.add_param(json.dumps(expr.document))
            return f"({val} {expr.operator} {document}::jsonb)"

        elif isinstance(expr, JsonPath):
            val = self.compile_expr(expr.value)
            path = self.add_param(expr.path)
            right = self.compile_expr(expr.right)
            return f"(jsonb_path_query_first({val}, {path}) #>> '{{}}' {expr.operator} {right})"

        elif isinstance(expr, Exists):
            return f"EXISTS {self.compile_expr(expr.query)}"

        elif isinstance(expr, SelectQuery):
            return f"({self._compile_select(expr)})"

        elif isinstance(expr, Function):
            args = ", ".join(self.compile_expr(arg) for arg in expr.args)
            if expr.distinct:
                args = f"DISTINCT {args}"
            compiled = f"{expr.name}({args})"
            if expr.alias:
                compiled += f" AS {expr.alias}"
            return compiled
        elif isinstance(expr, OrderBy):
            return f"{self.compile_expr(expr.column)} {expr.direction}"
        else:
            raise TypeError(f"Unknown expression type: {type(expr)}")

    def _compile_raw(self, raw: RawSQL):
        parts = raw.sql.split("?")
        if len(parts) - 1 != len(raw.params):
            raise ValueError(f"Raw sql expects {len(parts) - 1} bindings, got {len(raw.params)}")
        sql = parts[0]
        for value, part in zip(raw.params, parts[1:]):
            sql += self.add_param(value) + part
        return sql

    def compile_joins(self, joins):
        return " ".join(
            f"{join.join_type} JOIN {self.compile_table(join.table)} ON {self.compile_expr(join.condition)}"
            for join in joins
        )

    def compile_table(self, table):
        if isinstance(table, Subquery):
            return f"({self._compile_select(table.query)}) AS {table.alias}"
        if isinstance(table, Table):
            return f"{table.name}" + (f" AS {table.alias}" if table.alias else "")
        return str(table)

    def _compile_select(self, q: SelectQuery):
        if q.from_table is None:
            raise ValueError("Select query has no table")
        sql = "SELECT "
        if q.distinct:
            sql += "DISTINCT "

        sql += ", ".join(self.compile_expr(col) for col in q.columns) if q.columns else "*"

        sql += f" FROM {self.compile_table(q.from_table)}"

        if q.joins:
            sql += f" {self.compile_joins(q.joins)}"

        if q.where.condition is not None:
            sql += f" WHERE {self.compile_expr(q.where.condition)}"

        if q.group_by:
            sql += " GROUP BY " + ", ".join(self.compile_expr(c) for c in q.group_by)

        if q.having is not None:
            sql += f" HAVING {self.compile_expr(q.having)}"

        if q.order_by:
            sql += " ORDER BY " + ", ".join(self.compile_expr(c) for c in q.order_by)

        if q.limit is not None:
            sql += f" LIMIT {int(q.limit)}"

        if q.offset is not None:
            sql += f" OFFSET {int(q.offset)}"

        return sql

    def _compile_insert(self, q: InsertQuery):
        table = self.compile_table(q.table)
        columns = ", ".join(col.name for col in q.columns)

        value_rows = []
        for row in q.values:
            placeholders = [self.compile_expr(v) for v in row]
            value_rows.append(f"({', '.join(placeholders)})")
        values_sql = ", ".join(value_rows)

        sql = f"INSERT INTO {table} ({columns}) VALUES {values_sql}"

        if q.returning:
            returning = ", ".join(self.compile_expr(c) for c in q.returning)
            sql += f" RETURNING {returning}"

        return sql

    def _compile_update(self, q: UpdateQuery):
        table = self.compile_table(q.table)

        # SET targets cannot be table qualified in postgres
        set_fragments = []
        for col, val in q.set_clauses:
            set_fragments.append(f"{col.name} = {self.compile_expr(val)}")
        set_clause = ", ".join(set_fragments)

        sql = f"UPDATE {table} SET {set_clause}"

        if q.where.condition is not None:
            sql += f" WHERE {self.compile_expr(q.where.condition)}"

        if q.returning:
            returning_sql = ", ".join(self.compile_expr(c) for c in q.returning)
            sql += f" RETURNING {returning_sql}"

        return sql

    def _compile_delete(self, q: DeleteQuery):
        table = self.compile_table(q.table)
        sql = f"DELETE FROM {table}"

        if q.where.condition is not None:
            sql += f" WHERE {self.compile_expr(q.where.condition)}"

        if q.returning:
            returning_sql = ", ".join(self.compile_expr(c) for c in q.returning)
            sql += f" RETURNING {returning_sql}"

        return sql


def compile_query(query) -> tuple[str, list]:
    return Compiler().compile(query)
