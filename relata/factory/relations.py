from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from relata.factory.factory import FactoryBuilder, ModelFactory
    from relata.model.model import Model
    from relata.model.relations import HasOne as HasOneRelation


class FactoryRelation:
    """
    Links a model relation to the factory of the related model. The factory
    callable may return a `ModelFactory` or an already configured builder.
    """

    def __init__(self, relation: "HasOneRelation", factory: Callable[[], "ModelFactory | FactoryBuilder"]):
        self.relation = relation.boot()
        self.factory = factory

    def compile(self, parent: "Model", callback: Callable | None = None) -> "FactoryBuilder":
        from relata.factory.factory import ModelFactory

        builder = self.factory()
        if isinstance(builder, ModelFactory):
            builder = builder.query()
        # related rows join the transaction of the parent
        if parent.trx is not None:
            builder.use_ctx(parent.trx)
        if callback is not None:
            callback(builder)
        return builder

    def _foreign_key_attributes(self, parent: "Model") -> dict[str, Any]:
        attributes: dict[str, Any] = {}
        self.relation.hydrate_for_persistence(parent, attributes)
        return attributes

    async def make(self, parent: "Model", callback: Callable | None = None, count: int | None = None) -> None:
        raise NotImplementedError

    async def create(self, parent: "Model", callback: Callable | None = None, count: int | None = None) -> None:
        raise NotImplementedError


class HasOne(FactoryRelation):

    async def make(self, parent, callback=None, count=None):
        """Make a stubbed related instance and set it on the parent."""
        attributes = self._foreign_key_attributes(parent)
        builder = self.compile(parent, callback)
        instance = await builder.tap(lambda related, ctx: related.merge(attributes)).make_stubbed()
        parent.set_related(self.relation.name, instance)

    async def create(self, parent, callback=None, count=None):
        """Persist the related instance and set it on the parent."""
        attributes = self._foreign_key_attributes(parent)
        builder = self.compile(parent, callback)
        instance = await builder.tap(lambda related, ctx: related.merge(attributes)).create()
        parent.set_related(self.relation.name, instance)


class HasMany(FactoryRelation):

    async def make(self, parent, callback=None, count=None):
        attributes = self._foreign_key_attributes(parent)
        builder = self.compile(parent, callback)
        instances = await builder.tap(lambda related, ctx: related.merge(attributes)).make_stubbed_many(count or 1)
        parent.set_related(self.relation.name, instances)

    async def create(self, parent, callback=None, count=None):
        attributes = self._foreign_key_attributes(parent)
        builder = self.compile(parent, callback)
        instances = await builder.tap(lambda related, ctx: related.merge(attributes)).create_many(count or 1)
        parent.set_related(self.relation.name, instances)
