from .pivot_helpers import PivotHelpers
from .query_builder import ManyToManyQueryBuilder
from .sub_query_builder import ManyToManySubQueryBuilder
from .query_client import ManyToManyQueryClient

__all__ = [
    "PivotHelpers",
    "ManyToManyQueryBuilder",
    "ManyToManySubQueryBuilder",
    "ManyToManyQueryClient",
]
