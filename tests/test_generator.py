import json

import pytest
import yaml
from httpx import AsyncClient
from sqlalchemy import Boolean, DateTime, Float, Integer, Numeric, String

from sqlrest.core.config import settings
from sqlrest.core.generator.introspect import describe_schema, is_excluded, semantic_type
from sqlrest.core.generator.openapi import build_document, serialize
from sqlrest.core.rest.definitions import load
from sqlrest.core.schemas import SemanticType


@pytest.mark.parametrize(
    "sql_type, expected",
    [
        (Integer(), SemanticType.INTEGER),
        (Boolean(), SemanticType.INTEGER),
        (Float(), SemanticType.FLOAT),
        (Numeric(10, 2), SemanticType.FLOAT),
        (Numeric(10, 0), SemanticType.INTEGER),
        (String(20), SemanticType.STRING),
        (DateTime(), SemanticType.STRING),
    ],
)
def test_semantic_type(sql_type, expected):
    assert semantic_type(sql_type) is expected


def test_default_exclusions():
    assert is_excluded("_migrations", settings.GENERATOR_EXCLUDE)
    assert is_excluded("STA_Import", settings.GENERATOR_EXCLUDE)
    assert is_excluded("tblUser", settings.GENERATOR_EXCLUDE)
    assert not is_excluded("owner", settings.GENERATOR_EXCLUDE)


@pytest.mark.asyncio
async def test_describe_schema(db):
    """Tables, keys and foreign keys seen from both ends"""
    description = await describe_schema(db)

    assert set(description.tables) == {"owner", "pet", "visit"}
    pet = description.tables["pet"]
    assert pet.primary_key == "id"
    weight = next(column for column in pet.columns if column.name == "weight")
    assert weight.semantic_type is SemanticType.FLOAT

    relations = {
        table: {relation.name: relation.level for relation in relations}
        for table, relations in description.relations.items()
    }
    assert relations == {
        "owner": {"pet": 0},
        "pet": {"owner": 1, "visit": 0},
        "visit": {"pet": 1},
    }


@pytest.mark.asyncio
async def test_excluded_tables_drop_their_relations(db):
    description = await describe_schema(db, exclude=["vis*"])

    assert set(description.tables) == {"owner", "pet"}
    assert [relation.name for relation in description.relations["pet"]] == ["owner"]


@pytest.mark.asyncio
async def test_generated_document_loads_back(db):
    """A generated description is a valid engine definition"""
    document = build_document(await describe_schema(db), title="Pets")
    snapshot = load(serialize(document, "yaml"))

    assert document["info"]["title"] == "Pets"
    assert set(snapshot.routes) == {
        "/owner",
        "/owner/{id}",
        "/pet",
        "/pet/{id}",
        "/visit",
        "/visit/{id}",
    }
    assert set(snapshot.resolve("get", "/pet/{id}").methods) == {"get", "patch", "put", "delete"}
    assert snapshot.schema("pet").column("weight").type is SemanticType.FLOAT
    assert snapshot.link("owner", "pet").result_table == "pet"
    assert snapshot.link("pet", "owner").is_many_to_one

    include = next(
        parameter
        for parameter in document["paths"]["/pet"]["get"]["parameters"]
        if parameter.get("name") == "include"
    )
    assert include["schema"]["items"]["enum"] == ["owner", "visit"]


def test_serialize_rejects_unknown_format():
    with pytest.raises(ValueError):
        serialize({}, "xml")


@pytest.mark.asyncio
async def test_description_endpoints(client: AsyncClient):
    response = await client.get("/rest/openapi.yaml")

    assert response.status_code == 200
    document = yaml.safe_load(response.text)
    assert document["links"]["pet.owner"]["x-level"] == 1
    assert document["components"]["schemas"]["owner"]["x-primaryKey"] == "id"

    response = await client.get("/rest/openapi.json")

    assert response.status_code == 200
    assert json.loads(response.text)["paths"]["/visit"]["post"]["tags"] == ["visit"]


@pytest.mark.asyncio
async def test_generated_description_serves_requests(client: AsyncClient, processor):
    """Describe the database, install the description and query through it"""
    response = await client.get("/rest/openapi.yaml")
    processor.store.install(response.text)

    response = await client.get("/rest/visit", params={"include": "pet"})
    data = response.json()

    assert data["response"]["code"] == "200"
    assert [visit["pet"]["name"] for visit in data["result"]] == ["Rex", "Rex", "Kit"]
