from dataclasses import dataclass
from typing import Optional, Tuple

from sqlrest.core.errors import MethodNotAllowedError, RouteNotFoundError
from sqlrest.core.rest.definitions import MethodDefinition, Snapshot
from sqlrest.core.rest.params import INTEGER_MAX
from sqlrest.core.schemas import TableSchema

ID_PLACEHOLDER = "{id}"


@dataclass(frozen=True)
class ResolvedRoute:
    path: str
    method: str
    table: TableSchema
    identifier: Optional[int]
    definition: MethodDefinition


def normalize_path(path: str) -> Tuple[str, Optional[int]]:
    """
    Lower-case the path and swap a numeric last segment for {id}.

    Examples:
        "/Person/12" -> ("/person/{id}", 12)
        "/Person/"   -> ("/person", None)
    """
    path = "/" + path.split("?")[0].strip("/")
    segments = path.split("/")

    identifier = None
    # ASCII only, str.isdigit also accepts digits int() cannot parse.
    # Anything beyond a 64-bit integer is not an identifier.
    last = segments[-1]
    if last.isascii() and last.isdigit() and int(last) <= INTEGER_MAX:
        identifier = int(last)
        segments[-1] = ID_PLACEHOLDER

    return "/".join(segments).lower(), identifier


def resolve(snapshot: Snapshot, method: str, path: str) -> ResolvedRoute:
    normalized, identifier = normalize_path(path)

    route = snapshot.resolve(method, normalized)
    if route is None:
        raise RouteNotFoundError("That resource doesn't exist")

    definition = route.method(method)
    if definition is None:
        raise MethodNotAllowedError(f"Method {method.lower()} is not supported")

    # The definition store only admits routes whose table has a schema
    table = snapshot.schema(definition.table)
    return ResolvedRoute(
        path=normalized,
        method=method.lower(),
        table=table,
        identifier=identifier,
        definition=definition,
    )
