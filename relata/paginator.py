import math
from typing import Any, Mapping
from urllib.parse import urlencode

from pydantic import BaseModel

from relata.naming import NamingStrategy, SnakeCaseNamingStrategy


def flatten_query_string(values: Mapping[str, Any], prefix: str | None = None) -> list[tuple[str, Any]]:
    """
    Flatten a query string mapping into `(key, value)` pairs. Nested mappings
    use bracket keys (`filter[name]=virk`) and sequences repeat their key.
    """
    pairs: list[tuple[str, Any]] = []
    for key, value in values.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if isinstance(value, Mapping):
            pairs.extend(flatten_query_string(value, name))
        elif isinstance(value, (list, tuple)):
            pairs.extend((name, item) for item in value)
        else:
            pairs.append((name, value))
    return pairs


def serialize_row(row: Any) -> Any:
    # models serialize their preloaded relations and extra columns too
    if callable(getattr(row, "serialize", None)):
        return row.serialize()
    if isinstance(row, BaseModel):
        return row.model_dump(mode="json")
    return row


class SimplePaginator(list):
    """
    Simple paginator works with the data set provided by the standard
    `offset` and `limit` based pagination.

    The paginator is a list of the rows on the current page. Every derived
    value is computed once at construction, only the link configuration
    (`base_url`, `query_string`) can change afterwards.
    """

    # Naming strategy for the pagination meta keys, can be replaced per instance
    naming_strategy: NamingStrategy = SnakeCaseNamingStrategy()

    # The first page is always 1
    first_page = 1

    def __init__(self, total: int, per_page: int, current_page: int, *rows: Any):
        super().__init__(rows)
        self._rows = list(rows)
        self._qs: dict[str, Any] = {}
        self._url = "/"

        self._total = int(total)
        self._per_page = per_page
        self._current_page = current_page

        self._is_empty = len(self._rows) == 0
        # `has_total` reports about all the records, `is_empty` only about this page
        self._has_total = self._total > 0
        self._last_page = max(math.ceil(self._total / self._per_page), 1)
        self._has_more_pages = self._last_page > self._current_page
        self._has_pages = self._last_page != 1

    @property
    def total(self) -> int:
        return self._total

    @property
    def per_page(self) -> int:
        return self._per_page

    @property
    def current_page(self) -> int:
        return self._current_page

    @property
    def is_empty(self) -> bool:
        return self._is_empty

    @property
    def has_total(self) -> bool:
        return self._has_total

    @property
    def last_page(self) -> int:
        return self._last_page

    @property
    def has_more_pages(self) -> bool:
        return self._has_more_pages

    @property
    def has_pages(self) -> bool:
        return self._has_pages

    def all(self) -> list[Any]:
        """A reference to the result rows"""
        return self._rows

    def get_meta(self) -> dict[str, Any]:
        keys = self.naming_strategy.pagination_meta_keys()
        return {
            keys.total: self.total,
            keys.per_page: self.per_page,
            keys.current_page: self.current_page,
            keys.last_page: self.last_page,
            keys.first_page: self.first_page,
            keys.first_page_url: self.get_url(1),
            keys.last_page_url: self.get_url(self.last_page),
            keys.next_page_url: self.get_next_page_url(),
            keys.previous_page_url: self.get_previous_page_url(),
        }

    def to_json(self) -> dict[str, Any]:
        return {
            "meta": self.get_meta(),
            "data": [serialize_row(row) for row in self._rows],
        }

    def query_string(self, values: dict[str, Any]) -> "SimplePaginator":
        """Define query string to be appended to the pagination links"""
        self._qs = dict(values)
        return self

    def base_url(self, url: str) -> "SimplePaginator":
        """Define base url for making the pagination links"""
        self._url = url
        return self

    def get_url(self, page: int) -> str:
        """Returns url for a given page. Pages below 1 point to the first page."""
        qs = urlencode(flatten_query_string({**self._qs, "page": page if page >= 1 else 1}))
        return f"{self._url}?{qs}"

    def get_next_page_url(self) -> str | None:
        if self.has_more_pages:
            return self.get_url(self.current_page + 1)
        return None

    def get_previous_page_url(self) -> str | None:
        if self.current_page > 1:
            return self.get_url(self.current_page - 1)
        return None

    def get_urls_for_range(self, start: int, end: int) -> list[dict[str, Any]]:
        return [
            {"url": self.get_url(page), "page": page, "is_active": page == self.current_page}
            for page in range(start, end + 1)
        ]

    def __repr__(self):
        return (
            f"<SimplePaginator page={self.current_page}/{self.last_page} "
            f"per_page={self.per_page} total={self.total} rows={len(self._rows)}>"
        )
