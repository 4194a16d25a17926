class OrmError(Exception):
    """Base class for errors raised by the relation and query layer."""


class PreloadPaginationError(OrmError):
    def __init__(self, relation_name: str):
        super().__init__(f'Cannot paginate relationship "{relation_name}" during preload')
        self.relation_name = relation_name


class MissingLocalKeyError(OrmError):
    def __init__(self, model_name: str, key: str, relation_name: str, action: str = "select"):
        super().__init__(
            f'Cannot {action} "{relation_name}", value of "{model_name}.{key}" is undefined'
        )
        self.model_name = model_name
        self.key = key
        self.relation_name = relation_name


class RelationNotFoundError(OrmError):
    def __init__(self, model_name: str, relation_name: str):
        super().__init__(f'"{relation_name}" is not defined as a relationship on "{model_name}" model')
        self.model_name = model_name
        self.relation_name = relation_name


class QueryError(OrmError):
    """Unsupported operation for the current query builder."""
