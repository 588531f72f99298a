"""
DEFINITION STORE - declarative API description loaded into lookup tables

The description document (YAML or JSON) carries three sections the engine
reads:
    paths                 route -> method -> {tags: [table], ...}
    links                 "table.relation" -> x-childTable, x-level, ...
    components.schemas    table -> properties -> column -> {type}

A load always builds a complete, read-only Snapshot first. The store then
publishes it with a single reference assignment, so a request holding the
previous snapshot never sees a half-built route or link table, and a failed
reload leaves the previous snapshot in place.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

import yaml
from pydantic import ValidationError

from sqlrest.core.errors import DefinitionError
from sqlrest.core.schemas import ColumnSchema, LinkDefinition, SemanticType, TableSchema

logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "post", "put", "patch", "delete")


@dataclass(frozen=True)
class MethodDefinition:
    table: str
    metadata: Mapping[str, Any]


@dataclass(frozen=True)
class RouteDefinition:
    path: str
    methods: Mapping[str, MethodDefinition]

    def method(self, name: str) -> Optional[MethodDefinition]:
        return self.methods.get(name.lower())


@dataclass(frozen=True)
class Snapshot:
    routes: Mapping[str, RouteDefinition]
    links: Mapping[str, LinkDefinition]
    schemas: Mapping[str, TableSchema]

    def resolve(self, method: str, path: str) -> Optional[RouteDefinition]:
        """Route for a normalized path, None when the path is unknown.

        The method is not checked here; a known path with an unknown
        method is a different failure for the caller to report.
        """
        return self.routes.get(path.lower())

    def link(self, table: str, relation: str) -> Optional[LinkDefinition]:
        return self.links.get(f"{table}.{relation}".lower())

    def schema(self, table: str) -> Optional[TableSchema]:
        return self.schemas.get(table.lower())


# =========================
# Parsing
# =========================
def parse_document(document: Union[str, bytes, Mapping[str, Any]]) -> Dict[str, Any]:
    # JSON is valid YAML, one parser covers both formats
    if isinstance(document, Mapping):
        return dict(document)

    try:
        parsed = yaml.safe_load(document)
    except yaml.YAMLError as error:
        raise DefinitionError(f"Could not parse the API definition: {error}")

    if not isinstance(parsed, dict):
        raise DefinitionError("The API definition must be a mapping at the top level")
    return parsed


def _table_schema(name: str, spec: Mapping[str, Any], default_id: str) -> TableSchema:
    properties = spec.get("properties") or {}
    if not isinstance(properties, Mapping):
        raise DefinitionError(f"Schema '{name}' has invalid properties")

    columns = [
        ColumnSchema(
            name=str(column),
            type=SemanticType.from_openapi((prop or {}).get("type")),
        )
        for column, prop in properties.items()
    ]
    by_lower = {column.name.lower(): column.name for column in columns}

    primary_key = spec.get("x-primaryKey") or default_id
    if primary_key.lower() in by_lower:
        primary_key = by_lower[primary_key.lower()]
    elif columns:
        primary_key = columns[0].name

    return TableSchema(name=name, columns=columns, primary_key=primary_key)


def load(
    document: Union[str, bytes, Mapping[str, Any]], default_id_column: str = "ID"
) -> Snapshot:
    """
    Build a Snapshot from a description document.

    Raises DefinitionError when the document cannot be parsed or refers
    to tables that have no schema.
    """
    api = parse_document(document)

    components = api.get("components") or {}
    schema_specs = components.get("schemas") or {}
    schemas: Dict[str, TableSchema] = {}
    for table, spec in schema_specs.items():
        if not isinstance(spec, Mapping):
            raise DefinitionError(f"Schema '{table}' must be a mapping")
        schemas[str(table).lower()] = _table_schema(str(table), spec, default_id_column)

    routes: Dict[str, RouteDefinition] = {}
    for path, spec in (api.get("paths") or {}).items():
        if not isinstance(spec, Mapping):
            raise DefinitionError(f"Path '{path}' must be a mapping")

        methods: Dict[str, MethodDefinition] = {}
        for method, metadata in spec.items():
            method = str(method).lower()
            if method not in HTTP_METHODS:
                continue

            tags = (metadata or {}).get("tags") or []
            if not tags:
                raise DefinitionError(f"'{method} {path}' does not name a table tag")
            table = schemas.get(str(tags[0]).lower())
            if table is None:
                raise DefinitionError(f"'{method} {path}' refers to unknown table '{tags[0]}'")
            methods[method] = MethodDefinition(
                table=table.name, metadata=MappingProxyType(dict(metadata))
            )

        key = str(path).lower()
        if key in routes:
            # Last one wins, the document should not contain paths differing only in case
            logger.warning(f"Route '{path}' collides with an earlier path, overwriting")
        routes[key] = RouteDefinition(path=str(path), methods=MappingProxyType(methods))

    links: Dict[str, LinkDefinition] = {}
    for key, spec in (api.get("links") or {}).items():
        try:
            link = LinkDefinition.model_validate(spec)
        except ValidationError as error:
            raise DefinitionError(f"Link '{key}' is invalid: {error}")

        if link.result_table.lower() not in schemas:
            raise DefinitionError(
                f"Link '{key}' results in table '{link.result_table}' which has no schema"
            )
        links[str(key).lower()] = link

    return Snapshot(
        routes=MappingProxyType(routes),
        links=MappingProxyType(links),
        schemas=MappingProxyType(schemas),
    )


# =========================
# Store
# =========================
class DefinitionStore:
    """Holds the current Snapshot and replaces it as a whole on reload."""

    def __init__(self, file: Optional[str] = None, default_id_column: str = "ID"):
        self.file = file
        self.default_id_column = default_id_column
        self._snapshot: Optional[Snapshot] = None

    @property
    def snapshot(self) -> Optional[Snapshot]:
        return self._snapshot

    @property
    def loaded(self) -> bool:
        return self._snapshot is not None

    def install(self, document: Union[str, bytes, Mapping[str, Any]]) -> Snapshot:
        snapshot = load(document, self.default_id_column)
        self._snapshot = snapshot
        logger.info(
            f"API definition loaded: {len(snapshot.routes)} routes, "
            f"{len(snapshot.links)} links, {len(snapshot.schemas)} tables"
        )
        return snapshot

    def _read(self) -> str:
        if not self.file:
            raise DefinitionError("No API definition file configured")
        try:
            return Path(self.file).read_text(encoding="utf-8")
        except OSError as error:
            raise DefinitionError(f"Could not read API definition '{self.file}': {error}")

    async def reload(self) -> Snapshot:
        text = await asyncio.to_thread(self._read)
        return self.install(text)
