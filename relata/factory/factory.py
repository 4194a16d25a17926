import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, Type, TypeVar

from relata.exceptions import RelationNotFoundError
from relata.factory.relations import FactoryRelation, HasMany, HasOne
from relata.model.model import Model

logger = logging.getLogger(__name__)

MODEL = TypeVar("MODEL", bound=Model)

_stub_ids = itertools.count(1)


@dataclass
class FactoryContext:
    is_stubbed: bool
    trx: Any = None


class ModelFactory(Generic[MODEL]):
    """
    Test data factory for a model.

        UserFactory = ModelFactory.define(User, lambda ctx: {"name": "virk"})
        UserFactory.relation("posts", lambda: PostFactory)

        user = await UserFactory.query().with_("posts", 3).create()
    """

    def __init__(self, model: Type[MODEL], definition: Callable[[FactoryContext], dict[str, Any]]):
        self.model = model
        self.definition = definition
        self.relations: dict[str, FactoryRelation] = {}

    @classmethod
    def define(cls, model: Type[MODEL], definition: Callable[[FactoryContext], dict[str, Any]]) -> "ModelFactory[MODEL]":
        return cls(model, definition)

    def relation(self, name: str, factory: Callable[[], "ModelFactory | FactoryBuilder"]) -> "ModelFactory[MODEL]":
        relation = self.model.get_relation(name)
        if relation.kind == "has_one":
            self.relations[name] = HasOne(relation, factory)
        elif relation.kind == "has_many":
            self.relations[name] = HasMany(relation, factory)
        else:
            raise ValueError(f'Factories do not support "{relation.kind}" relationship "{name}"')
        return self

    def get_relation(self, name: str) -> FactoryRelation:
        if name not in self.relations:
            raise RelationNotFoundError(self.model.__name__, name)
        return self.relations[name]

    def query(self) -> "FactoryBuilder[MODEL]":
        return FactoryBuilder(self)


class FactoryBuilder(Generic[MODEL]):
    """One use builder making or persisting instances of a factory's model."""

    def __init__(self, factory: ModelFactory[MODEL]):
        self.factory = factory
        self.trx: Any = None
        self._taps: list[Callable[[MODEL, FactoryContext], Any]] = []
        self._merge: dict[str, Any] | list[dict[str, Any]] | None = None
        self._with: list[tuple[str, int, Callable | None]] = []

    def tap(self, callback: Callable[[MODEL, FactoryContext], Any]) -> "FactoryBuilder[MODEL]":
        """Called with every instance before it is stubbed or persisted."""
        self._taps.append(callback)
        return self

    def merge(self, attributes: dict[str, Any] | list[dict[str, Any]]) -> "FactoryBuilder[MODEL]":
        """Override the defined attributes. A list applies one mapping per instance."""
        self._merge = attributes
        return self

    def use_ctx(self, trx: Any) -> "FactoryBuilder[MODEL]":
        self.trx = trx
        return self

    def with_(self, relation: str, count: int = 1, callback: Callable | None = None) -> "FactoryBuilder[MODEL]":
        self.factory.get_relation(relation)
        self._with.append((relation, count, callback))
        return self

    def _merge_for(self, index: int) -> dict[str, Any]:
        if isinstance(self._merge, list):
            return self._merge[index] if index < len(self._merge) else {}
        return self._merge or {}

    def _build(self, index: int, ctx: FactoryContext) -> MODEL:
        attributes = {**self.factory.definition(ctx), **self._merge_for(index)}
        model = self.factory.model(**attributes)
        for callback in self._taps:
            callback(model, ctx)
        return model

    async def make_stubbed(self) -> MODEL:
        models = await self.make_stubbed_many(1)
        return models[0]

    async def make_stubbed_many(self, count: int) -> list[MODEL]:
        ctx = FactoryContext(is_stubbed=True, trx=self.trx)
        models = []
        for index in range(count):
            model = self._build(index, ctx)
            primary_key = model.get_primary_key()
            if getattr(model, primary_key, None) is None:
                setattr(model, primary_key, next(_stub_ids))
            for name, relation_count, callback in self._with:
                await self.factory.get_relation(name).make(model, callback, relation_count)
            models.append(model)
        return models

    async def create(self) -> MODEL:
        models = await self.create_many(1)
        return models[0]

    async def create_many(self, count: int) -> list[MODEL]:
        ctx = FactoryContext(is_stubbed=False, trx=self.trx)
        models = []
        for index in range(count):
            model = self._build(index, ctx)
            if self.trx is not None:
                model.use_transaction(self.trx)
            await model.save()
            for name, relation_count, callback in self._with:
                await self.factory.get_relation(name).create(model, callback, relation_count)
            models.append(model)
        logger.debug("created %d %s rows", len(models), self.factory.model.__name__)
        return models
