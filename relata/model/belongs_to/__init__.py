from .query_client import BelongsToQueryClient

__all__ = ["BelongsToQueryClient"]
