import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import Column, Float, ForeignKey, Integer, MetaData, String, Table
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from sqlrest.api.dependencies import get_processor
from sqlrest.core.database import get_db
from sqlrest.core.rest.definitions import DefinitionStore, load
from sqlrest.core.rest.dialects import dialect_named
from sqlrest.core.rest.processor import RestProcessor
from sqlrest.core.rest.triggers import TriggerRegistry
from sqlrest.main import app

# In-memory database shared by every connection of one test
TEST_DATABASE_URL = "sqlite+aiosqlite://"

metadata = MetaData()

owner = Table(
    "owner",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(50), nullable=False),
    Column("city", String(50)),
)

pet = Table(
    "pet",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(50)),
    Column("weight", Float),
    Column("owner_id", Integer, ForeignKey("owner.id")),
)

visit = Table(
    "visit",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("pet_id", Integer, ForeignKey("pet.id")),
    Column("note", String(100)),
)

OWNERS = [
    {"id": 1, "name": "Ann", "city": "Oslo"},
    {"id": 2, "name": "Bob", "city": "Rome"},
    {"id": 3, "name": "Cid", "city": "Oslo"},
]
PETS = [
    {"id": 1, "name": "Rex", "weight": 12.5, "owner_id": 1},
    {"id": 2, "name": "Tom", "weight": 4.0, "owner_id": 1},
    {"id": 3, "name": "Kit", "weight": 3.2, "owner_id": 2},
]
VISITS = [
    {"id": 1, "pet_id": 1, "note": "checkup"},
    {"id": 2, "pet_id": 1, "note": "vaccine"},
    {"id": 3, "pet_id": 3, "note": "checkup"},
]

# Hand written description of the tables above. pet and visit have no
# x-primaryKey and fall back to the default "ID" column, matched case-insensitively.
API_DEFINITION = """
openapi: 3.0.0
paths:
  /owner:
    get:
      tags: [owner]
    post:
      tags: [owner]
  /owner/{ID}:
    get:
      tags: [owner]
    put:
      tags: [owner]
    patch:
      tags: [owner]
    delete:
      tags: [owner]
  /pet:
    get:
      tags: [pet]
    post:
      tags: [pet]
  /pet/{ID}:
    get:
      tags: [pet]
    put:
      tags: [pet]
    patch:
      tags: [pet]
    delete:
      tags: [pet]
links:
  owner.pet:
    x-childTable: pet
    x-childColumn: owner_id
    x-parentTable: owner
    x-parentColumn: id
    x-resultTable: pet
    x-level: 0
  pet.owner:
    x-childTable: pet
    x-childColumn: owner_id
    x-parentTable: owner
    x-parentColumn: id
    x-resultTable: owner
    x-level: 1
  pet.visit:
    x-childTable: visit
    x-childColumn: pet_id
    x-parentTable: pet
    x-parentColumn: id
    x-resultTable: visit
    x-level: 0
  pet.self:
    x-childTable: pet
    x-childColumn: id
    x-parentTable: pet
    x-parentColumn: id
    x-resultTable: pet
    x-level: 1
components:
  schemas:
    owner:
      type: object
      x-primaryKey: id
      properties:
        id: {type: integer}
        name: {type: string}
        city: {type: string}
    pet:
      type: object
      properties:
        id: {type: integer}
        name: {type: string}
        weight: {type: number}
        owner_id: {type: integer}
    visit:
      type: object
      properties:
        id: {type: integer}
        pet_id: {type: integer}
        note: {type: string}
"""


@pytest.fixture
def api_definition():
    return API_DEFINITION


@pytest.fixture
def snapshot():
    return load(API_DEFINITION)


@pytest.fixture
def mssql():
    return dialect_named("mssql")


@pytest.fixture
def sqlite_dialect():
    return dialect_named("sqlite")


# Fresh database per test, dropped together with the engine
@pytest_asyncio.fixture(scope="function")
async def engine():
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
        await conn.execute(owner.insert(), OWNERS)
        await conn.execute(pet.insert(), PETS)
        await conn.execute(visit.insert(), VISITS)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db(engine):
    async with engine.connect() as conn:
        yield conn


@pytest.fixture
def store():
    definition_store = DefinitionStore()
    definition_store.install(API_DEFINITION)
    return definition_store


@pytest.fixture
def processor(store):
    return RestProcessor(store, TriggerRegistry(), default_page_size=100)


# Client
@pytest_asyncio.fixture(scope="function")
async def client(engine, processor):
    async def override_get_db():
        async with engine.connect() as conn:
            yield conn

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_processor] = lambda: processor

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
