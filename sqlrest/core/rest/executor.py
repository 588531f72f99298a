import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.exc import StatementError
from sqlalchemy.ext.asyncio import AsyncConnection

from sqlrest.core.errors import BackendExecutionError
from sqlrest.core.rest.dialects import Dialect
from sqlrest.core.rest.params import ParameterTable

logger = logging.getLogger(__name__)

# Set by the database when a constraint carries a readable message
CLARIFIED_MESSAGE = re.compile(r"ERROR: (.*?)$", re.MULTILINE)


@dataclass
class Execution:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    lastrowid: Optional[int] = None


def clarify(message: str) -> Optional[str]:
    match = CLARIFIED_MESSAGE.search(message)
    return match.group(1) if match else None


async def execute(
    conn: AsyncConnection,
    statement: str,
    params: ParameterTable,
    dialect: Dialect,
    want_lastrowid: bool = False,
) -> Execution:
    """
    Run one statement in its own transaction.

    Backend failures are raised as BackendExecutionError carrying the
    clarified message when there is one, else the raw error text together
    with the statement.
    """
    sql = dialect.wrap(statement)
    try:
        async with conn.begin():
            result = await conn.execute(text(sql).bindparams(*params.bindparams()))
            execution = Execution()
            if result.returns_rows:
                execution.rows = [dict(row) for row in result.mappings()]
            elif want_lastrowid:
                execution.lastrowid = result.lastrowid
            return execution

    except StatementError as error:
        raw = str(error.orig if error.orig is not None else error)
        logger.error(f"Statement failed: {raw}\n{sql}")

        message = clarify(raw)
        if message:
            raise BackendExecutionError(message)
        raise BackendExecutionError(raw, statement=sql)
