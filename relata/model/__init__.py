from .model import Model, ModelField, KeyField
from .relations import BelongsTo, HasOne, HasMany, ManyToMany
from .query_builder import ModelQueryBuilder, Variation
from .transactions import managed_transaction

__all__ = [
    "Model",
    "ModelField",
    "KeyField",
    "BelongsTo",
    "HasOne",
    "HasMany",
    "ManyToMany",
    "ModelQueryBuilder",
    "Variation",
    "managed_transaction",
]
