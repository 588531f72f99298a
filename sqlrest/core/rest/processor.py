"""
Request orchestration: resolve -> build -> execute -> reshape -> trigger.

This is the one place that turns failures into the error envelope. Every
recognized failure ends the request with exactly one error response and
nothing is executed after a build step fails.
"""

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from sqlalchemy.ext.asyncio import AsyncConnection

from sqlrest.core.errors import RequestBodyError, SqlRestError
from sqlrest.core.rest.builder import BuiltQuery, QueryBuilder
from sqlrest.core.rest.definitions import DefinitionStore
from sqlrest.core.rest.dialects import get_dialect
from sqlrest.core.rest.executor import Execution, execute
from sqlrest.core.rest.reshape import paging_metadata, reshape, strip_total, total_rows
from sqlrest.core.rest.routing import resolve
from sqlrest.core.rest.triggers import TriggerRegistry
from sqlrest.core.schemas import Paging, ResponseInfo, envelope

logger = logging.getLogger(__name__)

BODY_METHODS = ("post", "put", "patch")


def parse_body(body: Union[bytes, str, None]) -> Any:
    if body is None or not body.strip():
        return None
    try:
        return json.loads(body)
    except ValueError as error:
        raise RequestBodyError(f"Request body is not valid JSON: {error}")


def shape_result(built: BuiltQuery, execution: Execution) -> Tuple[List[Dict[str, Any]], Optional[Paging]]:
    table = built.table

    if built.method == "get":
        rows = execution.rows
        row_count = total_rows(rows)
        if built.layout is not None:
            records = reshape(rows, built.layout)
        else:
            records = [dict(row) for row in rows]
        strip_total(records)

        paging = None
        if built.paging is not None:
            paging = paging_metadata(
                records,
                row_count,
                built.paging.page_size,
                built.paging.page_nr,
                table.primary_key,
            )
        return records, paging

    if built.returns_identity:
        if execution.rows:
            identifier = next(iter(execution.rows[0].values()))
        else:
            identifier = execution.lastrowid
    else:
        identifier = built.identifier
    return [{table.primary_key: identifier}], None


class RestProcessor:
    def __init__(
        self,
        store: DefinitionStore,
        triggers: Optional[TriggerRegistry] = None,
        default_page_size: int = 100,
        clear_error_function: str = "",
    ):
        self.store = store
        self.triggers = triggers or TriggerRegistry()
        self.default_page_size = default_page_size
        self.clear_error_function = clear_error_function

    def error(self, method: str, url: str, error: SqlRestError) -> Dict[str, Any]:
        response = ResponseInfo(
            method=method.upper(),
            url=url,
            code="500",
            message=error.message,
            query=error.statement,
        )
        return envelope({}, response)

    async def process(
        self,
        conn: AsyncConnection,
        method: str,
        path: str,
        query: Optional[Mapping[str, str]] = None,
        body: Union[bytes, str, None] = None,
        url: Optional[str] = None,
    ) -> Dict[str, Any]:
        url = url or path

        # One snapshot for the whole request, a reload meanwhile does not affect it
        snapshot = self.store.snapshot
        if snapshot is None:
            return self.error(method, url, SqlRestError("The API has not loaded yet"))

        try:
            route = resolve(snapshot, method, path)
            dialect = get_dialect(conn.dialect, self.clear_error_function)
            builder = QueryBuilder(snapshot, dialect, self.default_page_size)

            payload = parse_body(body) if route.method in BODY_METHODS else None
            built = builder.build(route, query or {}, payload)

            execution = await execute(
                conn, built.statement, built.params, dialect, want_lastrowid=built.returns_identity
            )
        except SqlRestError as error:
            logger.info(f"{method.upper()} {url} failed: {error.message}")
            return self.error(method, url, error)

        result, paging = shape_result(built, execution)
        result = self.triggers.apply(route.table.name, route.method, result)

        response = ResponseInfo(method=route.method.upper(), url=url, code="200")
        return envelope(result, response, paging)
