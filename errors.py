"""Exceptions raised by the data and map layers."""


class DataLoadError(RuntimeError):
    """A dataset could not be read at startup. The app cannot serve data."""


class GeometryLoadError(RuntimeError):
    """A boundary document could not be fetched or decoded."""


class QueryError(ValueError):
    """Base class for rejected queries."""


class InvalidQueryError(QueryError):
    pass


class EntityNotFoundError(QueryError):
    def __init__(self, requested_name: str, level: str):
        super().__init__(f"{level} not found: {requested_name!r}")
        self.requested_name = requested_name
        self.level = level
