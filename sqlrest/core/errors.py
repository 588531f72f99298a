from typing import Optional


class SqlRestError(Exception):
    """
    Base class for every failure the engine reports to a client.

    The outer request handler turns these into the error envelope,
    nothing below it writes responses.
    """

    def __init__(self, message: str, statement: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.statement = statement


class DefinitionError(SqlRestError):
    """Description document missing or unparseable."""


class RouteNotFoundError(SqlRestError):
    pass


class MethodNotAllowedError(SqlRestError):
    pass


class UnsupportedMethodError(SqlRestError):
    pass


class FilterSyntaxError(SqlRestError):
    pass


class InvalidParameterError(SqlRestError):
    pass


class MissingIdentifierError(SqlRestError):
    pass


class RequestBodyError(SqlRestError):
    pass


class RelationError(SqlRestError):
    pass


class BackendExecutionError(SqlRestError):
    pass
