from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from relata.model.postgres.sql.queries import Column, SelectQuery


class Expression:
    def __and__(self, other):
        return And(self, other)

    def __or__(self, other):
        return Or(self, other)

    def __invert__(self):
        return Not(self)


class RawValue(Expression):
    def __init__(self, value):
        self.value = value


class Value(Expression):
    def __init__(self, value, inline=True, no_quote=False):
        self.value = value
        self.inline = inline
        self.no_quote = no_quote


def param(value):
    return Value(value, inline=False)


def star():
    return Value("*")


class Function(Expression):
    def __init__(self, name, *args, alias=None, distinct=False):
        self.name = name
        self.args = args
        self.alias = alias
        self.distinct = distinct

    def __str__(self):
        inner = ", ".join(str(arg) for arg in self.args)
        return f"{self.name}({inner})" + (f" AS {self.alias}" if self.alias else "")


class BinaryExpression(Expression):
    def __init__(self, left, operator: str, right):
        self.left = left
        self.operator = operator
        self.right = right


class Eq(BinaryExpression):
    def __init__(self, left, right):
        super().__init__(left, '=', right)


class Neq(BinaryExpression):
    def __init__(self, left, right):
        super().__init__(left, '!=', right)


class Gt(BinaryExpression):
    def __init__(self, left, right):
        super().__init__(left, '>', right)


class Gte(BinaryExpression):
    def __init__(self, left, right):
        super().__init__(left, '>=', right)


class Lt(BinaryExpression):
    def __init__(self, left, right):
        super().__init__(left, '<', right)


class Lte(BinaryExpression):
    def __init__(self, left, right):
        super().__init__(left, '<=', right)

COMPARISON_OPERATORS = {"=", "!=", "<>", ">", ">=", "<", "<=", "like", "ilike"}


def compare(left, operator: str, right) -> Expression:
    """Build a comparison from an operator string, as used by `where(key, op, value)`."""
    op = operator.lower()
    if op not in COMPARISON_OPERATORS:
        raise ValueError(f"Unsupported operator: {operator}")
    if op == "like":
        return Like(left, right)
    if op == "ilike":
        return Like(left, right, case_insensitive=True)
    return BinaryExpression(left, "!=" if op == "<>" else op, right)


class And(Expression):
    def __init__(self, *conditions):
        self.conditions = conditions


class Or(Expression):
    def __init__(self, *conditions):
        self.conditions = conditions


class Not(Expression):
    def __init__(self, condition):
        self.condition = condition


class OrderBy(Expression):
    def __init__(self, column: "Column", direction: str = "ASC"):
        self.column = column
        self.direction = direction.upper()


class IsNull(Expression):
    def __init__(self, value):
        self.value = value


class In(Expression):
    def __init__(self, value, options):
        self.value = value
        self.options = options  # list of raw values or a SelectQuery


class Between(Expression):
    def __init__(self, value, lower, upper):
        self.value = value
        self.lower = lower
        self.upper = upper


class Like(Expression):
    def __init__(self, value, pattern, case_insensitive: bool = False):
        self.value = value
        self.pattern = pattern
        self.case_insensitive = case_insensitive


class JsonCompare(Expression):
    """jsonb comparison against a json encoded parameter: `=`, `@>` or `<@`"""
    def __init__(self, value, operator: str, document: Any):
        self.value = value
        self.operator = operator
        self.document = document


class JsonPath(Expression):
    def __init__(self, value, path: str, operator: str, right: Any):
        self.value = value
        self.path = path
        self.operator = operator
        self.right = right


class Exists(Expression):
    def __init__(self, query: "SelectQuery"):
        self.query = query


class WhereClause:
    def __init__(self, condition: Expression | None = None):
        self.condition = condition or None

    def __bool__(self):
        return self.condition is not None

    def and_(self, condition: Expression):
        if self.condition is None:
            self.condition = condition
        else:
            self.condition = And(self.condition, condition)
        return self

    def or_(self, condition: Expression):
        if self.condition is None:
            self.condition = condition
        else:
            self.condition = Or(self.condition, condition)
        return self

    def copy(self) -> "WhereClause":
        # expressions are never mutated in place, sharing the tree is enough
        return WhereClause(self.condition)

    def __and__(self, other: Expression):
        return self.and_(other)

    def __or__(self, other: Expression):
        return self.or_(other)

    def __str__(self):
        return str(self.condition) if self.condition else ""


class RawSQL(Expression):
    """Raw sql fragment. `?` placeholders are bound to `params` in order."""
    def __init__(self, sql: str, params: list | None = None):
        self.sql = sql
        self.params = params or []
