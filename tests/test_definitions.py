import logging

import pytest

from sqlrest.core.errors import DefinitionError
from sqlrest.core.rest.definitions import DefinitionStore, load
from sqlrest.core.schemas import SemanticType


def test_load_builds_lookup_tables(snapshot):
    """Routes, links and schemas are all keyed case-insensitively"""
    assert set(snapshot.routes) == {"/owner", "/owner/{id}", "/pet", "/pet/{id}"}
    assert snapshot.resolve("get", "/OWNER").method("GET").table == "owner"

    link = snapshot.link("Pet", "Owner")
    assert link.child_table == "pet"
    assert link.is_many_to_one
    assert not snapshot.link("owner", "pet").is_many_to_one


def test_schema_types_and_primary_key(snapshot):
    pet = snapshot.schema("PET")

    assert pet.names == ["id", "name", "weight", "owner_id"]
    assert pet.column("WEIGHT").type is SemanticType.FLOAT
    assert pet.column("owner_id").type is SemanticType.INTEGER
    # Default "ID" matched against the column "id"
    assert pet.primary_key == "id"


def test_primary_key_falls_back_to_first_column():
    snapshot = load(
        {"components": {"schemas": {"tag": {"properties": {"code": {"type": "string"}}}}}}
    )
    assert snapshot.schema("tag").primary_key == "code"


def test_json_documents_are_accepted():
    snapshot = load(
        '{"components": {"schemas": {"tag": {"x-primaryKey": "code",'
        ' "properties": {"code": {"type": "string"}, "uses": {"type": "integer"}}}}}}'
    )
    assert snapshot.schema("tag").column("uses").type is SemanticType.INTEGER


@pytest.mark.parametrize(
    "document",
    [
        "paths: [unclosed",
        "- just\n- a list\n",
        "paths:\n  /x:\n    get:\n      summary: no tag\n",
        "paths:\n  /x:\n    get:\n      tags: [missing]\n",
        "links:\n  a.b:\n    x-childTable: a\n",
    ],
)
def test_invalid_documents(document):
    with pytest.raises(DefinitionError):
        load(document)


def test_route_collision_keeps_last(caplog):
    document = {
        "paths": {
            "/Tag": {"get": {"tags": ["tag"]}},
            "/tag": {"post": {"tags": ["tag"]}},
        },
        "components": {"schemas": {"tag": {"properties": {"id": {"type": "integer"}}}}},
    }
    with caplog.at_level(logging.WARNING):
        snapshot = load(document)

    route = snapshot.resolve("post", "/tag")
    assert route.method("post") is not None
    assert route.method("get") is None
    assert "collides" in caplog.text


@pytest.mark.asyncio
async def test_failed_reload_keeps_previous_snapshot(tmp_path, api_definition):
    definition = tmp_path / "api.yaml"
    definition.write_text(api_definition, encoding="utf-8")
    store = DefinitionStore(str(definition))

    first = await store.reload()
    assert store.loaded

    definition.write_text("paths: [broken", encoding="utf-8")
    with pytest.raises(DefinitionError):
        await store.reload()

    assert store.snapshot is first


@pytest.mark.asyncio
async def test_reload_without_file():
    store = DefinitionStore()

    with pytest.raises(DefinitionError):
        await store.reload()
    assert not store.loaded
