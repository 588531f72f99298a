import pytest
from sqlalchemy import text

from sqlrest.core.errors import BackendExecutionError
from sqlrest.core.rest.executor import clarify, execute
from sqlrest.core.rest.params import ParameterTable


@pytest.mark.parametrize(
    "message, expected",
    [
        ("ERROR: City does not exist", "City does not exist"),
        ("(sqlite3.IntegrityError) ERROR: City does not exist", "City does not exist"),
        ("Msg 50000\nERROR: Owner is still referenced\nLine 4", "Owner is still referenced"),
        ("NOT NULL constraint failed: owner.name", None),
    ],
)
def test_clarify(message, expected):
    assert clarify(message) == expected


@pytest.mark.asyncio
async def test_rows_come_back_as_dicts(db, sqlite_dialect):
    params = ParameterTable()
    statement = f"SELECT id, name FROM owner WHERE city = {params.bind('Rome')}"

    execution = await execute(db, statement, params, sqlite_dialect)

    assert execution.rows == [{"id": 2, "name": "Bob"}]


@pytest.mark.asyncio
async def test_clarified_message_hides_the_statement(db, sqlite_dialect):
    async with db.begin():
        await db.execute(
            text(
                "CREATE TRIGGER owner_city_check BEFORE UPDATE ON owner "
                "WHEN NEW.city = 'Nowhere' "
                "BEGIN SELECT RAISE(ABORT, 'ERROR: City does not exist'); END"
            )
        )

    params = ParameterTable()
    statement = f"UPDATE owner SET city = {params.bind('Nowhere')} WHERE id = {params.bind(2)}"

    with pytest.raises(BackendExecutionError) as error:
        await execute(db, statement, params, sqlite_dialect)

    assert error.value.message == "City does not exist"
    assert error.value.statement is None


@pytest.mark.asyncio
async def test_raw_message_keeps_the_statement(db, sqlite_dialect):
    params = ParameterTable()
    statement = f"UPDATE owner SET name = NULL WHERE id = {params.bind(2)}"

    with pytest.raises(BackendExecutionError) as error:
        await execute(db, statement, params, sqlite_dialect)

    assert "NOT NULL" in error.value.message
    assert error.value.statement == statement
