from .model import Model, ModelField, KeyField, BelongsTo, HasOne, HasMany, ManyToMany, ModelQueryBuilder, managed_transaction
from .paginator import SimplePaginator
from .naming import SnakeCaseNamingStrategy, CamelCaseNamingStrategy
from .exceptions import OrmError, PreloadPaginationError, MissingLocalKeyError, RelationNotFoundError, QueryError

__all__ = [
    "Model",
    "ModelField",
    "KeyField",
    "BelongsTo",
    "HasOne",
    "HasMany",
    "ManyToMany",
    "ModelQueryBuilder",
    "managed_transaction",
    "SimplePaginator",
    "SnakeCaseNamingStrategy",
    "CamelCaseNamingStrategy",
    "OrmError",
    "PreloadPaginationError",
    "MissingLocalKeyError",
    "RelationNotFoundError",
    "QueryError",
]
