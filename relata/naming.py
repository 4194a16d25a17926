from typing import Protocol, runtime_checkable

from pydantic import BaseModel

from relata.utils.string_utils import camel_to_snake, snake_to_camel


class PaginationMetaKeys(BaseModel):
    """Key names used by the paginator when serializing its meta data."""
    total: str
    per_page: str
    current_page: str
    last_page: str
    first_page: str
    first_page_url: str
    last_page_url: str
    next_page_url: str
    previous_page_url: str


@runtime_checkable
class NamingStrategy(Protocol):
    def table_name(self, model_name: str) -> str:
        ...

    def pagination_meta_keys(self) -> PaginationMetaKeys:
        ...


class SnakeCaseNamingStrategy:

    def table_name(self, model_name: str) -> str:
        return camel_to_snake(model_name) + "s"

    def foreign_key(self, model_name: str, key: str = "id") -> str:
        return f"{camel_to_snake(model_name)}_{key}"

    def pivot_table(self, model_name: str, related_name: str) -> str:
        return "_".join(sorted([camel_to_snake(model_name), camel_to_snake(related_name)]))

    def pagination_meta_keys(self) -> PaginationMetaKeys:
        return PaginationMetaKeys(**{key: key for key in PaginationMetaKeys.model_fields})


class CamelCaseNamingStrategy(SnakeCaseNamingStrategy):

    def pagination_meta_keys(self) -> PaginationMetaKeys:
        return PaginationMetaKeys(**{key: snake_to_camel(key) for key in PaginationMetaKeys.model_fields})
