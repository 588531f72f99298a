"""
DESCRIPTION GENERATOR - catalog description to an OpenAPI style document

The document doubles as the engine's configuration: `paths` become routes,
`components.schemas` the column sets and `links` (with their x- attributes)
drive the include joins. See https://spec.openapis.org/oas/v3.0.0
"""

import copy
import json
from typing import Any, Dict, List, Sequence

import yaml
from sqlalchemy.ext.asyncio import AsyncConnection

from sqlrest.core.generator.introspect import SchemaDescription, TableInfo, describe_schema

ID_PATH_PARAMETER = {
    "name": "ID",
    "in": "path",
    "required": True,
    "description": "",
    "schema": {"type": "integer"},
}

QUERY_PARAMETERS = {
    "fields": {
        "name": "fields",
        "in": "query",
        "required": False,
        "description": "Return only these columns, separated by commas",
        "schema": {"type": "string"},
    },
    "orderBy": {
        "name": "orderBy",
        "in": "query",
        "required": False,
        "description": (
            "Inserted after ORDER BY, for example 'Name DESC, City'. "
            "With include, items are read against the base table columns"
        ),
        "schema": {"type": "string"},
    },
    "pageSize": {
        "name": "pageSize",
        "in": "query",
        "required": False,
        "description": "Number of rows per page. Must be an integer bigger than 0",
        "schema": {"type": "integer"},
    },
    "pageNr": {
        "name": "pageNr",
        "in": "query",
        "required": False,
        "description": "Page to return, starting at 1",
        "schema": {"type": "integer"},
    },
    "filter": {
        "name": "filter",
        "in": "query",
        "required": False,
        "description": "Conditions like (Name:eq:value) combined with and/or",
        "schema": {"type": "string"},
    },
}


def _ref(kind: str, name: str) -> Dict[str, str]:
    return {"$ref": f"#/components/{kind}/{name}"}


def _schema_response(table: str) -> Dict[str, Any]:
    return {
        "200": {
            "description": "",
            "content": {"application/json": {"schema": _ref("schemas", table)}},
        },
        "default": _ref("responses", "error"),
    }


def _invalid_input() -> Dict[str, Any]:
    return {"405": {"description": "Invalid input"}}


def _collection_parameters(table: TableInfo, relations: List[str]) -> List[Dict[str, Any]]:
    parameters: List[Dict[str, Any]] = [_ref("parameters", name) for name in QUERY_PARAMETERS]
    for column in table.columns:
        parameters.append(
            {
                "name": column.name,
                "in": "query",
                "required": False,
                "description": "",
                "schema": {"type": column.semantic_type.to_openapi()},
            }
        )
    if relations:
        parameters.append(
            {
                "name": "include",
                "in": "query",
                "required": False,
                "description": "Relations to include, separated by commas",
                "explode": True,
                "schema": {
                    "type": "array",
                    "uniqueItems": True,
                    "items": {"type": "string", "enum": relations},
                },
            }
        )
    return parameters


def build_paths(description: SchemaDescription) -> Dict[str, Any]:
    paths: Dict[str, Any] = {}
    for name, table in description.tables.items():
        relations = [relation.name for relation in description.relations.get(name, [])]

        paths[f"/{name}"] = {
            "get": {
                "summary": "",
                "tags": [name],
                "parameters": _collection_parameters(table, relations),
                "responses": _schema_response(name),
            },
            "post": {
                "summary": "",
                "tags": [name],
                "operationId": f"add{name}",
                "responses": _invalid_input(),
            },
        }

        single = {
            "get": {
                "summary": "",
                "tags": [name],
                "parameters": [copy.deepcopy(ID_PATH_PARAMETER)],
                "responses": _schema_response(name),
            }
        }
        for method in ("patch", "put", "delete"):
            single[method] = {
                "summary": "",
                "tags": [name],
                "parameters": [copy.deepcopy(ID_PATH_PARAMETER)],
                "responses": _invalid_input(),
            }
        paths[f"/{name}/{{ID}}"] = single
    return paths


def build_links(description: SchemaDescription) -> Dict[str, Any]:
    links: Dict[str, Any] = {}
    for relations in description.relations.values():
        for relation in relations:
            links[relation.path] = {
                "description": "",
                "operationId": f"get{relation.result_table}",
                "x-childTable": relation.child_table,
                "x-childColumn": relation.child_column,
                "x-parentTable": relation.parent_table,
                "x-parentColumn": relation.parent_column,
                "x-resultTable": relation.result_table,
                "x-level": relation.level,
            }
    return links


def build_schemas(description: SchemaDescription) -> Dict[str, Any]:
    schemas: Dict[str, Any] = {}
    for name, table in description.tables.items():
        schema: Dict[str, Any] = {"type": "object"}
        if table.primary_key:
            schema["x-primaryKey"] = table.primary_key
        schema["properties"] = {
            column.name: {"type": column.semantic_type.to_openapi()} for column in table.columns
        }
        schemas[name] = schema
    return schemas


def build_document(
    description: SchemaDescription, title: str = "SQL REST API", version: str = "1.0.0"
) -> Dict[str, Any]:
    return {
        "openapi": "3.0.0",
        "servers": [{"description": "", "url": ""}],
        "info": {
            "description": "",
            "version": version,
            "title": title,
        },
        "tags": [
            {"name": name, "description": f"{name} description"}
            for name in description.tables
        ],
        "paths": build_paths(description),
        "links": build_links(description),
        "components": {
            "schemas": build_schemas(description),
            "parameters": copy.deepcopy(QUERY_PARAMETERS),
            "responses": {
                "error": {
                    "description": "",
                    "content": {
                        "application/json": {
                            "schema": {
                                "type": "object",
                                "properties": {"error": {"type": "string"}},
                            }
                        }
                    },
                }
            },
        },
    }


def serialize(document: Dict[str, Any], output: str) -> str:
    output = output.lower()
    if output == "yaml":
        return yaml.safe_dump(document, sort_keys=False, allow_unicode=True)
    if output == "json":
        return json.dumps(document, indent=2)
    raise ValueError(f"Unknown output format '{output}', expected 'yaml' or 'json'")


async def generate_description(
    conn: AsyncConnection,
    output: str = "yaml",
    exclude: Sequence[str] = (),
    title: str = "SQL REST API",
    version: str = "1.0.0",
) -> str:
    description = await describe_schema(conn, exclude)
    return serialize(build_document(description, title, version), output)
