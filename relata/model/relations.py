from typing import TYPE_CHECKING, Any, Callable, Type

from relata.exceptions import MissingLocalKeyError
from relata.model.transactions import QueryClient

if TYPE_CHECKING:
    from relata.model.model import Model
    from relata.model.query_builder import ModelQueryBuilder


def get_key_value(target: Any, key: str) -> Any:
    if isinstance(target, dict):
        return target.get(key)
    return getattr(target, key, None)


def set_key_value(target: Any, key: str, value: Any) -> None:
    if isinstance(target, dict):
        target[key] = value
    else:
        setattr(target, key, value)


def get_value(model: "Model", key: str, relation: "Relation", action: str = "preload") -> Any:
    """Read the key a relation query depends on, failing loudly when it is not set."""
    value = get_key_value(model, key)
    if value is None:
        raise MissingLocalKeyError(type(model).__name__, key, relation.name, action)
    return value


def unique(values: list[Any]) -> list[Any]:
    return list(dict.fromkeys(values))


class Relation:
    """
    Base relation descriptor. Declared as a class attribute on a model, it
    learns its owner and name through `__set_name__` and resolves the related
    model lazily in `boot()`, so related models may be referenced by class
    name before they are defined.

    Reading the attribute on an instance returns the loaded related value.
    """
    kind: str = ""

    def __init__(self, related: "str | Type[Model] | Callable[[], Type[Model]]", *, on_query: Callable | None = None):
        self._related = related
        self.on_query = on_query
        self.name: str | None = None
        self.model: "Type[Model] | None" = None
        self.booted = False

    def __set_name__(self, owner, name):
        self.model = owner
        self.name = name

    def __get__(self, instance, owner):
        if instance is None:
            return self
        return instance.get_related(self.name)

    def __repr__(self):
        return f"<{type(self).__name__} {self.name}>"

    def related_model(self) -> "Type[Model]":
        if isinstance(self._related, str):
            from relata.model.model import get_model
            return get_model(self._related)
        if isinstance(self._related, type):
            return self._related
        return self._related()

    def boot(self) -> "Relation":
        if not self.booted:
            self._boot()
            self.booted = True
        return self

    def _boot(self):
        raise NotImplementedError

    def client(self, parent: "Model", client: QueryClient):
        raise NotImplementedError

    def eager_query(self, parents: "list[Model]", client: QueryClient) -> "ModelQueryBuilder":
        raise NotImplementedError

    def sub_query(self, client: QueryClient) -> "ModelQueryBuilder":
        raise NotImplementedError

    def hydrate_for_persistence(self, parent: "Model", target: "Model | dict") -> None:
        raise NotImplementedError

    def set_related_for_many(self, parents: "list[Model]", related: "list[Model]") -> None:
        raise NotImplementedError

    def apply_query_hook(self, query):
        if self.on_query is not None:
            self.on_query(query)
        return query

    async def eager_load(self, parents: "list[Model]", client: QueryClient | None = None, callback: Callable | None = None) -> None:
        """Load the relation for all `parents` with a single query."""
        self.boot()
        if not parents:
            return
        query = self.eager_query(parents, client or parents[0].get_client())
        if callback is not None:
            callback(query)
        related = await query.exec()
        self.set_related_for_many(parents, related)


class BelongsTo(Relation):
    """The parent stores `foreign_key`, pointing at `local_key` of the related model."""
    kind = "belongs_to"

    def __init__(self, related, *, foreign_key: str | None = None, local_key: str | None = None, on_query: Callable | None = None):
        super().__init__(related, on_query=on_query)
        self._foreign_key = foreign_key
        self._local_key = local_key

    def _boot(self):
        related = self.related_model()
        self.local_key = self._local_key or related.get_primary_key()
        self.foreign_key = self._foreign_key or related.naming_strategy.foreign_key(related.__name__, self.local_key)

    def client(self, parent, client):
        from relata.model.belongs_to.query_client import BelongsToQueryClient
        return BelongsToQueryClient(self.boot(), parent, client)

    def eager_query(self, parents, client):
        from relata.model.belongs_to.query_client import BelongsToQueryClient
        return BelongsToQueryClient.eager_query(client, self.boot(), parents)

    def sub_query(self, client):
        from relata.model.belongs_to.query_client import BelongsToQueryClient
        return BelongsToQueryClient.sub_query(client, self.boot())

    def hydrate_for_persistence(self, parent, target):
        set_key_value(parent, self.foreign_key, get_key_value(target, self.local_key))

    def set_related_for_many(self, parents, related):
        lookup = {get_key_value(row, self.local_key): row for row in related}
        for parent in parents:
            parent.set_related(self.name, lookup.get(get_key_value(parent, self.foreign_key)))


class HasOne(Relation):
    """The related model stores `foreign_key`, pointing at `local_key` of the parent."""
    kind = "has_one"

    def __init__(self, related, *, foreign_key: str | None = None, local_key: str | None = None, on_query: Callable | None = None):
        super().__init__(related, on_query=on_query)
        self._foreign_key = foreign_key
        self._local_key = local_key

    def _boot(self):
        self.local_key = self._local_key or self.model.get_primary_key()
        self.foreign_key = self._foreign_key or self.model.naming_strategy.foreign_key(self.model.__name__, self.local_key)

    def client(self, parent, client):
        from relata.model.has_one_or_many.query_client import HasOneOrManyQueryClient
        return HasOneOrManyQueryClient(self.boot(), parent, client)

    def eager_query(self, parents, client):
        from relata.model.has_one_or_many.query_client import HasOneOrManyQueryClient
        return HasOneOrManyQueryClient.eager_query(client, self.boot(), parents)

    def sub_query(self, client):
        from relata.model.has_one_or_many.query_client import HasOneOrManyQueryClient
        return HasOneOrManyQueryClient.sub_query(client, self.boot())

    def hydrate_for_persistence(self, parent, target):
        set_key_value(target, self.foreign_key, get_value(parent, self.local_key, self, "persist"))

    def _group(self, related):
        grouped: dict[Any, list] = {}
        for row in related:
            grouped.setdefault(get_key_value(row, self.foreign_key), []).append(row)
        return grouped

    def set_related_for_many(self, parents, related):
        grouped = self._group(related)
        for parent in parents:
            rows = grouped.get(get_key_value(parent, self.local_key), [])
            parent.set_related(self.name, rows[0] if rows else None)


class HasMany(HasOne):
    kind = "has_many"

    def set_related_for_many(self, parents, related):
        grouped = self._group(related)
        for parent in parents:
            parent.set_related(self.name, grouped.get(get_key_value(parent, self.local_key), []))


def resolve_pivot_timestamps(option: bool | dict[str, str | bool]) -> tuple[str | None, str | None]:
    """
    `True` selects `created_at` and `updated_at`. A mapping can rename either
    column or switch it off:

        {"created_at": "linked_at", "updated_at": False}
    """
    if option is True:
        return "created_at", "updated_at"
    if not option:
        return None, None

    def pick(default: str) -> str | None:
        value = option.get(default, False)
        if value is True:
            return default
        return value or None

    return pick("created_at"), pick("updated_at")


class ManyToMany(Relation):
    """
    Related rows are linked through `pivot_table`, holding `pivot_foreign_key`
    (the parent's `local_key`) and `pivot_related_foreign_key` (the related
    model's `related_key`).
    """
    kind = "many_to_many"

    def __init__(
        self,
        related,
        *,
        pivot_table: str | None = None,
        pivot_foreign_key: str | None = None,
        pivot_related_foreign_key: str | None = None,
        local_key: str | None = None,
        related_key: str | None = None,
        pivot_columns: list[str] | None = None,
        pivot_timestamps: bool | dict[str, str | bool] = False,
        on_query: Callable | None = None,
    ):
        super().__init__(related, on_query=on_query)
        self._pivot_table = pivot_table
        self._pivot_foreign_key = pivot_foreign_key
        self._pivot_related_foreign_key = pivot_related_foreign_key
        self._local_key = local_key
        self._related_key = related_key
        self.pivot_columns = list(pivot_columns or [])
        self._pivot_timestamps = pivot_timestamps

    def _boot(self):
        related = self.related_model()
        naming = self.model.naming_strategy
        self.local_key = self._local_key or self.model.get_primary_key()
        self.related_key = self._related_key or related.get_primary_key()
        self.pivot_foreign_key = self._pivot_foreign_key or naming.foreign_key(self.model.__name__, self.local_key)
        self.pivot_related_foreign_key = self._pivot_related_foreign_key or naming.foreign_key(related.__name__, self.related_key)
        self.pivot_table = self._pivot_table or naming.pivot_table(self.model.__name__, related.__name__)
        self.pivot_created_at, self.pivot_updated_at = resolve_pivot_timestamps(self._pivot_timestamps)
        self.pivot_timestamps = [name for name in (self.pivot_created_at, self.pivot_updated_at) if name]

    def pivot_alias(self, column: str) -> str:
        return f"pivot_{column}"

    def client(self, parent, client):
        from relata.model.many_to_many.query_client import ManyToManyQueryClient
        return ManyToManyQueryClient(self.boot(), parent, client)

    def eager_query(self, parents, client):
        from relata.model.many_to_many.query_client import ManyToManyQueryClient
        return ManyToManyQueryClient.eager_query(client, self.boot(), parents)

    def sub_query(self, client):
        from relata.model.many_to_many.query_client import ManyToManyQueryClient
        return ManyToManyQueryClient.sub_query(client, self.boot())

    def hydrate_for_persistence(self, parent, target):
        """Copy the parent key onto a pivot row (a dict of pivot attributes)."""
        set_key_value(target, self.pivot_foreign_key, get_value(parent, self.local_key, self, "persist"))

    def set_related_for_many(self, parents, related):
        alias = self.pivot_alias(self.pivot_foreign_key)
        grouped: dict[Any, list] = {}
        for row in related:
            grouped.setdefault(row.extras.get(alias), []).append(row)
        for parent in parents:
            parent.set_related(self.name, grouped.get(get_key_value(parent, self.local_key), []))
