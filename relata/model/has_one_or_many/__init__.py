from .query_client import HasOneOrManyQueryClient

__all__ = ["HasOneOrManyQueryClient"]
