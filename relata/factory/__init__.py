from .factory import ModelFactory, FactoryBuilder, FactoryContext
from . import relations

__all__ = ["ModelFactory", "FactoryBuilder", "FactoryContext", "relations"]
