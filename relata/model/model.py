import logging
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Self, Type

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr
from pydantic.fields import _Unset
from pydantic_core import PydanticUndefined, to_jsonable_python

from relata.exceptions import RelationNotFoundError
from relata.model.postgres.sql.compiler import compile_query
from relata.model.postgres.sql.expressions import Eq, param, star
from relata.model.postgres.sql.queries import Column, InsertQuery, Table, UpdateQuery
from relata.model.relations import Relation
from relata.model.transactions import QueryClient
from relata.naming import SnakeCaseNamingStrategy

if TYPE_CHECKING:
    from relata.model.query_builder import ModelQueryBuilder

logger = logging.getLogger(__name__)


_model_registry: dict[str, Type["Model"]] = {}


def get_model(name: str) -> Type["Model"]:
    """Look up a model class by its class name, used to resolve relation targets given as strings."""
    try:
        return _model_registry[name]
    except KeyError:
        raise ValueError(f"Model {name} is not defined") from None


def ModelField(
    default: Any = PydanticUndefined,
    *,
    default_factory: Callable[[], Any] | None = _Unset,
    description: str | None = _Unset,
) -> Any:
    """Define a model field backed by a table column"""
    extra = {"is_model_field": True}
    params = {
        "json_schema_extra": extra,
        "description": description,
    }
    if default_factory and default_factory != _Unset:
        params["default_factory"] = default_factory
    return Field(default, **params)


def KeyField(
    default: Any = None,
    *,
    primary_key: bool = False,
    description: str | None = _Unset,
) -> Any:
    """Define a key field. Keys default to `None` until the row is persisted."""
    extra = {"is_model_field": True, "is_key": True, "primary_key": primary_key}
    return Field(default, json_schema_extra=extra, description=description)


class Model(BaseModel):
    """
    Base class for all models.

    Columns are declared as pydantic fields, relations as class attributes:

        class User(Model):
            __table__ = "users"
            id: int = KeyField(primary_key=True)
            name: str = ModelField()
            skills = ManyToMany("Skill", pivot_columns=["proficiency"])

    Selected columns that are not fields (pivot columns, aggregates) are kept
    in `extras`. Loaded relations are kept aside and read through the
    relation attribute (`user.skills`) or `get_related`.
    """
    model_config = ConfigDict(ignored_types=(Relation,), arbitrary_types_allowed=True)

    __table__: ClassVar[str | None] = None
    __client__: ClassVar[QueryClient | None] = None
    __relations__: ClassVar[dict[str, Relation]] = {}
    naming_strategy: ClassVar[SnakeCaseNamingStrategy] = SnakeCaseNamingStrategy()

    _extras: dict[str, Any] = PrivateAttr(default_factory=dict)
    _trx: Any = PrivateAttr(default=None)
    _persisted: bool = PrivateAttr(default=False)
    _original: dict[str, Any] = PrivateAttr(default_factory=dict)
    _preloaded: dict[str, Any] = PrivateAttr(default_factory=dict)

    @classmethod
    def __pydantic_init_subclass__(cls, **kwargs: Any) -> None:
        super().__pydantic_init_subclass__(**kwargs)
        relations = {}
        for base in reversed(cls.__mro__):
            for name, value in vars(base).items():
                if isinstance(value, Relation):
                    relations[name] = value
        cls.__relations__ = relations
        _model_registry[cls.__name__] = cls

    # ------------------------------------------------------------------
    # schema
    # ------------------------------------------------------------------

    @classmethod
    def get_table_name(cls) -> str:
        return cls.__table__ or cls.naming_strategy.table_name(cls.__name__)

    @classmethod
    def get_primary_key(cls) -> str:
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra
            if isinstance(extra, dict) and extra.get("primary_key"):
                return name
        return "id"

    @classmethod
    def get_relation(cls, name: str) -> Relation:
        relation = cls.__relations__.get(name)
        if relation is None:
            raise RelationNotFoundError(cls.__name__, name)
        return relation.boot()

    @classmethod
    def get_relations(cls) -> dict[str, Relation]:
        return {name: relation.boot() for name, relation in cls.__relations__.items()}

    # ------------------------------------------------------------------
    # clients and transactions
    # ------------------------------------------------------------------

    @classmethod
    def use_client(cls, client: QueryClient | None) -> None:
        """Set the client used when no transaction is attached to a record."""
        cls.__client__ = client

    @classmethod
    def get_default_client(cls) -> QueryClient:
        if cls.__client__ is None:
            from relata.model.postgres.client import PostgresClient
            Model.__client__ = PostgresClient()
        return cls.__client__

    def use_transaction(self, trx: QueryClient) -> Self:
        self._trx = trx
        return self

    @property
    def trx(self) -> QueryClient | None:
        if self._trx is not None and getattr(self._trx, "is_completed", False):
            # the transaction finished elsewhere, fall back to the default client
            self._trx = None
        return self._trx

    def get_client(self) -> QueryClient:
        return self.trx or type(self).get_default_client()

    @classmethod
    def query(cls, client: QueryClient | None = None) -> "ModelQueryBuilder[Self]":
        from relata.model.query_builder import ModelQueryBuilder
        return ModelQueryBuilder(cls, client or cls.get_default_client())

    # ------------------------------------------------------------------
    # state
    # ------------------------------------------------------------------

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Self:
        """Hydrate a persisted instance from a database row."""
        fields = {key: value for key, value in row.items() if key in cls.model_fields}
        partial = any(field.is_required() and name not in fields for name, field in cls.model_fields.items())
        # cherry picked columns or aggregates cannot pass validation
        instance = cls.model_construct(**fields) if partial else cls.model_validate(fields)
        instance._extras = {key: value for key, value in row.items() if key not in cls.model_fields}
        instance._mark_persisted()
        return instance

    @property
    def extras(self) -> dict[str, Any]:
        return self._extras

    @property
    def is_persisted(self) -> bool:
        return self._persisted

    @property
    def primary_id(self) -> Any:
        return getattr(self, self.get_primary_key())

    @property
    def dirty(self) -> dict[str, Any]:
        """Columns changed since the row was last loaded or saved."""
        current = self.model_dump()
        if not self._persisted:
            return current
        return {key: value for key, value in current.items() if self._original.get(key, PydanticUndefined) != value}

    @property
    def is_dirty(self) -> bool:
        return bool(self.dirty)

    def _mark_persisted(self):
        self._persisted = True
        self._original = self.model_dump()

    def _snapshot(self) -> tuple:
        """Field values and persistence state, for `_restore` after a rolled back write."""
        return self.model_dump(), self._persisted, dict(self._original), dict(self._extras)

    def _restore(self, snapshot: tuple):
        values, self._persisted, self._original, self._extras = snapshot
        for key, value in values.items():
            setattr(self, key, value)

    def _fill(self, row: dict[str, Any]):
        for key, value in row.items():
            if key in type(self).model_fields:
                setattr(self, key, value)
            else:
                self._extras[key] = value

    def merge(self, values: dict[str, Any]) -> Self:
        """Assign many attributes at once. Unknown keys land in `extras`."""
        self._fill(values)
        return self

    def set_related(self, name: str, value: Any) -> None:
        type(self).get_relation(name)
        self._preloaded[name] = value

    def get_related(self, name: str) -> Any:
        return self._preloaded.get(name)

    def related(self, name: str):
        """Returns the query client for the relation `name` scoped to this record."""
        return type(self).get_relation(name).client(self, self.get_client())

    # ------------------------------------------------------------------
    # persistence
    # ------------------------------------------------------------------

    async def save(self) -> Self:
        """
        Insert the record when it is new, otherwise update the changed columns.
        Saving a persisted record without changes does not touch the database.
        """
        client = self.get_client()
        table = Table(self.get_table_name())
        primary_key = self.get_primary_key()

        if not self._persisted:
            values = self.model_dump()
            if values.get(primary_key) is None:
                values.pop(primary_key, None)
            query = InsertQuery(table)
            query.columns = [Column(name) for name in values]
            query.values = [[param(value) for value in values.values()]]
            query.returning = [star()]
            sql, params = compile_query(query)
            row = await client.fetch_one(sql, *params)
            if row:
                self._fill(row)
            self._mark_persisted()
            return self

        dirty = self.dirty
        if not dirty:
            return self

        query = UpdateQuery(table).set([(Column(name), param(value)) for name, value in dirty.items()])
        query.where.and_(Eq(Column(primary_key), param(self.primary_id)))
        sql, params = compile_query(query)
        await client.execute(sql, *params)
        self._mark_persisted()
        return self

    def serialize(self) -> dict[str, Any]:
        data = self.model_dump(mode="json")
        for name, value in self._preloaded.items():
            if isinstance(value, list):
                data[name] = [item.serialize() for item in value]
            elif isinstance(value, Model):
                data[name] = value.serialize()
            else:
                data[name] = value
        if self._extras:
            data["meta"] = to_jsonable_python(self._extras)
        return data
