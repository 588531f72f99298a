"""
QUERY BUILDER - request to parameterized statement

One entry point per HTTP method. Each produces a BuiltQuery: the rendered
statement, its ParameterTable and whatever the response step needs to
shape the rows (paging request, reshaping layout).
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from sqlrest.core.errors import (
    InvalidParameterError,
    MissingIdentifierError,
    RelationError,
    RequestBodyError,
    UnsupportedMethodError,
)
from sqlrest.core.rest.definitions import Snapshot
from sqlrest.core.rest.dialects import Dialect
from sqlrest.core.rest.filters import compile_filter
from sqlrest.core.rest.params import ParameterTable
from sqlrest.core.rest.plan import (
    TOTAL_ROWS,
    DeleteStatement,
    InsertStatement,
    Join,
    Page,
    Projection,
    QueryPlan,
    Stage,
    UpdateStatement,
)
from sqlrest.core.rest.reshape import RowLayout
from sqlrest.core.rest.routing import ResolvedRoute
from sqlrest.core.schemas import ColumnSchema, LinkDefinition, TableSchema

logger = logging.getLogger(__name__)

DATA_STAGE = "data_cte"
FETCH_STAGE = "fetch_cte"
COUNT_STAGE = "count_cte"

# Page size and number stay 32-bit so the offset still binds as a 64-bit integer
PAGE_LIMIT = 2**31 - 1


@dataclass(frozen=True)
class PageRequest:
    page_size: int
    page_nr: int

    @property
    def offset(self) -> int:
        return (self.page_nr - 1) * self.page_size


@dataclass
class BuiltQuery:
    method: str
    table: TableSchema
    statement: str
    params: ParameterTable
    identifier: Optional[int] = None
    plan: Optional[QueryPlan] = None
    paging: Optional[PageRequest] = None
    layout: Optional[RowLayout] = None

    @property
    def returns_identity(self) -> bool:
        return self.method == "post"


@dataclass
class GetRequest:
    """Query parameters of a GET after validation."""

    columns: List[ColumnSchema]
    where: List[str]
    order_by: Optional[str]
    page: PageRequest
    includes: List[str]


def parse_positive(value: str, label: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        number = 0
    if number <= 0:
        raise InvalidParameterError(
            f"Invalid {label} argument '{value}'. "
            f"{label.capitalize()} must be an integer bigger than 0"
        )
    if number > PAGE_LIMIT:
        raise InvalidParameterError(
            f"Invalid {label} argument '{value}'. "
            f"{label.capitalize()} must not exceed {PAGE_LIMIT}"
        )
    return number


class QueryBuilder:
    def __init__(self, snapshot: Snapshot, dialect: Dialect, default_page_size: int = 100):
        self.snapshot = snapshot
        self.dialect = dialect
        self.default_page_size = default_page_size

    def build(
        self,
        route: ResolvedRoute,
        query: Optional[Mapping[str, str]] = None,
        body: Any = None,
    ) -> BuiltQuery:
        params = ParameterTable()
        method = route.method.lower()

        if method == "get":
            return self.build_get(route, query or {}, params)
        if method == "post":
            return self.build_post(route, body, params)
        if method == "patch":
            return self.build_patch(route, body, params)
        if method == "put":
            return self.build_put(route, body, params)
        if method == "delete":
            return self.build_delete(route, params)

        raise UnsupportedMethodError(f"{method} is not a valid method")

    # =========================
    # GET
    # =========================
    def parse_get(
        self, route: ResolvedRoute, query: Mapping[str, str], params: ParameterTable
    ) -> GetRequest:
        table = route.table
        columns = list(table.columns)
        order_by = None
        page_size = self.default_page_size
        page_nr = 1
        includes: List[str] = []
        where: List[str] = []
        equals: List[Tuple[str, Any]] = []

        for key, value in query.items():
            lower = key.lower()
            if lower == "fields":
                wanted = {name.strip().lower() for name in value.split(",")}
                columns = [column for column in columns if column.name.lower() in wanted]
            elif lower == "orderby":
                order_by = value
            elif lower == "pagesize":
                page_size = parse_positive(value, "page size")
            elif lower == "pagenr":
                page_nr = parse_positive(value, "page number")
            elif lower == "filter":
                where.append(compile_filter(value, table, params.bind, self.dialect))
            elif lower == "include":
                includes = [name.strip() for name in value.split(",") if name.strip()]
            elif table.has(key):
                equals.append((table.column(key).name, value))

        if not columns:
            raise InvalidParameterError("None of the requested fields exist")

        for column, value in equals:
            where.append(f"{self.dialect.column(table.name, column)} = {params.bind(value)}")

        if route.identifier is not None:
            where.append(
                f"{self.dialect.column(table.name, table.primary_key)} = "
                f"{params.bind(route.identifier)}"
            )

        return GetRequest(
            columns=columns,
            where=where,
            order_by=order_by,
            page=PageRequest(page_size=page_size, page_nr=page_nr),
            includes=includes,
        )

    def build_get(
        self, route: ResolvedRoute, query: Mapping[str, str], params: ParameterTable
    ) -> BuiltQuery:
        request = self.parse_get(route, query, params)

        if request.includes:
            plan, layout = self.plan_with_includes(route, request, params)
        else:
            plan, layout = self.plan_simple(route, request, params), None

        return BuiltQuery(
            method="get",
            table=route.table,
            statement=plan.render(self.dialect),
            params=params,
            identifier=route.identifier,
            plan=plan,
            # A single record fetch never pages
            paging=request.page if route.identifier is None else None,
            layout=layout,
        )

    def _page(self, route: ResolvedRoute, request: GetRequest, params: ParameterTable) -> Optional[Page]:
        if route.identifier is not None:
            return None
        return Page(
            offset=params.bind(request.page.offset),
            fetch=params.bind(request.page.page_size),
        )

    def _count_stage(self) -> Stage:
        return Stage(
            name=COUNT_STAGE,
            source=DATA_STAGE,
            projections=[Projection(alias=TOTAL_ROWS, expression="COUNT(*)")],
        )

    def plan_simple(
        self, route: ResolvedRoute, request: GetRequest, params: ParameterTable
    ) -> QueryPlan:
        table = route.table
        names = [column.name for column in request.columns]

        order_by = request.order_by
        if not order_by:
            key = table.primary_key if table.primary_key in names else names[0]
            order_by = f"{self.dialect.quote(key)} ASC"

        data = Stage(
            name=DATA_STAGE,
            source=table.name,
            projections=[
                Projection(alias=column.name, column=(table.name, column.name), type=column.type)
                for column in request.columns
            ],
            where=request.where,
        )
        return QueryPlan(
            stages=[data, self._count_stage()],
            union=[DATA_STAGE],
            count_stage=COUNT_STAGE,
            order_by=order_by,
            page=self._page(route, request, params),
        )

    def resolve_links(self, table: TableSchema, includes: List[str]) -> List[Tuple[LinkDefinition, TableSchema]]:
        resolved: List[Tuple[LinkDefinition, TableSchema]] = []
        seen = {table.name.lower()}

        for name in includes:
            link = self.snapshot.link(table.name, name)
            if link is None:
                logger.debug(f"Ignoring unknown include '{name}' on '{table.name}'")
                continue

            result = self.snapshot.schema(link.result_table)
            if result.name.lower() == table.name.lower():
                raise RelationError(
                    f"Relation '{name}' refers back to '{table.name}' and cannot be included"
                )
            if result.name.lower() in seen:
                raise RelationError(f"Relation '{name}' includes '{result.name}' a second time")
            seen.add(result.name.lower())
            resolved.append((link, result))

        return resolved

    def _base_side(self, link: LinkDefinition, table: TableSchema) -> Optional[str]:
        if link.child_table.lower() == table.name.lower():
            return link.child_column
        if link.parent_table.lower() == table.name.lower():
            return link.parent_column
        return None

    def plan_with_includes(
        self, route: ResolvedRoute, request: GetRequest, params: ParameterTable
    ) -> Tuple[QueryPlan, RowLayout]:
        table = route.table
        links = self.resolve_links(table, request.includes)
        many_to_one = [(link, result) for link, result in links if link.is_many_to_one]
        one_to_many = [(link, result) for link, result in links if not link.is_many_to_one]

        # The identifier groups rows and the one-to-many joins need their anchor columns
        base_columns = list(request.columns)
        required = {table.primary_key.lower()}
        for link, _ in one_to_many:
            anchor = self._base_side(link, table)
            if anchor:
                required.add(anchor.lower())
        for column in table.columns:
            if column.name.lower() in required and column not in base_columns:
                base_columns.append(column)
        base_columns = [column for column in table.columns if column in base_columns]

        # (table, column) in the order every stage projects them
        fields: List[Tuple[TableSchema, ColumnSchema]] = [(table, c) for c in base_columns]
        for _, result in links:
            fields.extend((result, column) for column in result.columns)

        # Aliases are unique per statement, a clash gets a numeric suffix
        aliases: Dict[Tuple[str, str], str] = {}
        taken = set()
        for owner, column in fields:
            name = candidate = f"{owner.name}_{column.name}"
            suffix = 1
            while candidate.lower() in taken:
                suffix += 1
                candidate = f"{name}_{suffix}"
            taken.add(candidate.lower())
            aliases[(owner.name, column.name.lower())] = candidate

        def alias(owner: str, column: str) -> str:
            return aliases.get((owner, column.lower()), f"{owner}_{column}")

        base_key = alias(table.name, table.primary_key)
        joined = {table.name} | {result.name for _, result in many_to_one}

        data = Stage(
            name=DATA_STAGE,
            source=table.name,
            projections=[
                Projection(
                    alias=alias(owner.name, column.name),
                    column=(owner.name, column.name) if owner.name in joined else None,
                    type=column.type,
                )
                for owner, column in fields
            ],
            joins=[
                Join(
                    table=result.name,
                    left=(link.child_table, link.child_column),
                    right=(link.parent_table, link.parent_column),
                )
                for link, result in many_to_one
            ],
            where=request.where,
        )

        page = self._page(route, request, params)
        if request.order_by:
            order_by = ", ".join(
                self._aliased_order(part, table, alias) for part in request.order_by.split(",")
            )
        else:
            order_by = f"{self.dialect.quote(base_key)} ASC"
        fetch = Stage(
            name=FETCH_STAGE,
            source=DATA_STAGE,
            # Ordering inside a stage is only valid alongside paging on some backends
            order_by=order_by if page else None,
            page=page,
        )

        # Base table columns are read back from the page, under their alias
        def endpoint(end_table: str, end_column: str) -> Tuple[str, str]:
            if end_table.lower() == table.name.lower():
                anchor = table.column(end_column)
                return FETCH_STAGE, alias(table.name, anchor.name if anchor else end_column)
            return end_table, end_column

        stages = [data, fetch]
        union = [FETCH_STAGE]
        for index, (link, result) in enumerate(one_to_many, start=1):
            projections = []
            for owner, column in fields:
                name = alias(owner.name, column.name)
                if name == base_key:
                    projections.append(Projection(alias=name, column=(FETCH_STAGE, name), type=column.type))
                elif owner is result:
                    projections.append(Projection(alias=name, column=(result.name, column.name), type=column.type))
                else:
                    projections.append(Projection(alias=name, type=column.type))

            name = f"union_cte_{index}"
            stages.append(
                Stage(
                    name=name,
                    source=FETCH_STAGE,
                    projections=projections,
                    joins=[
                        Join(
                            table=result.name,
                            left=endpoint(link.child_table, link.child_column),
                            right=endpoint(link.parent_table, link.parent_column),
                        )
                    ],
                )
            )
            union.append(name)

        stages.append(self._count_stage())
        plan = QueryPlan(
            stages=stages,
            union=union,
            count_stage=COUNT_STAGE,
            # Rows of one base record must be contiguous for the reshaper
            order_by=f"{self.dialect.quote(base_key)} ASC",
        )
        layout = RowLayout(
            base_table=table.name,
            primary_key=table.primary_key,
            one_to_many={result.name: result.primary_key for _, result in one_to_many},
            many_to_one=tuple(result.name for _, result in many_to_one),
            columns={
                alias(owner.name, column.name): (owner.name, column.name) for owner, column in fields
            },
        )
        return plan, layout

    def _aliased_order(
        self, part: str, table: TableSchema, alias: Callable[[str, str], str]
    ) -> str:
        """One orderBy item rewritten against the data stage aliases."""
        part = part.strip()
        column, _, rest = part.partition(" ")
        known = table.column(column)
        if known is None:
            return f"{table.name}_{part}"
        ordered = self.dialect.quote(alias(table.name, known.name))
        return f"{ordered} {rest.strip()}" if rest.strip() else ordered

    # =========================
    # POST / PATCH / PUT / DELETE
    # =========================
    def _body_values(self, table: TableSchema, body: Any) -> Dict[str, Any]:
        if not isinstance(body, Mapping):
            raise RequestBodyError("Request body must be a JSON object")
        return {
            table.column(key).name: value for key, value in body.items() if table.has(key)
        }

    def _require_identifier(self, route: ResolvedRoute) -> int:
        if route.identifier is None:
            raise MissingIdentifierError(
                f"No ID specified in path for message {route.method.upper()}"
            )
        return route.identifier

    def build_post(self, route: ResolvedRoute, body: Any, params: ParameterTable) -> BuiltQuery:
        table = route.table
        values = self._body_values(table, body)
        if not values:
            raise RequestBodyError(f"Request body contains no columns of '{table.name}'")

        statement = InsertStatement(
            table=table.name,
            values=[(column, params.bind(value)) for column, value in values.items()],
            primary_key=table.primary_key,
        )
        return BuiltQuery(
            method="post",
            table=table,
            statement=statement.render(self.dialect),
            params=params,
        )

    def build_patch(self, route: ResolvedRoute, body: Any, params: ParameterTable) -> BuiltQuery:
        table = route.table
        identifier = self._require_identifier(route)
        values = self._body_values(table, body)
        if not values:
            raise RequestBodyError(f"Request body contains no columns of '{table.name}'")

        statement = UpdateStatement(
            table=table.name,
            assignments=[(column, params.bind(value)) for column, value in values.items()],
            primary_key=table.primary_key,
            identifier=params.bind(identifier),
        )
        return BuiltQuery(
            method="patch",
            table=table,
            statement=statement.render(self.dialect),
            params=params,
            identifier=identifier,
        )

    def build_put(self, route: ResolvedRoute, body: Any, params: ParameterTable) -> BuiltQuery:
        table = route.table
        identifier = self._require_identifier(route)
        values = self._body_values(table, body)

        # Every column is written, those missing from the body become NULL
        assignments = [
            (column.name, params.bind(values[column.name]) if column.name in values else "NULL")
            for column in table.columns
            if column.name != table.primary_key
        ]
        statement = UpdateStatement(
            table=table.name,
            assignments=assignments,
            primary_key=table.primary_key,
            identifier=params.bind(identifier),
        )
        return BuiltQuery(
            method="put",
            table=table,
            statement=statement.render(self.dialect),
            params=params,
            identifier=identifier,
        )

    def build_delete(self, route: ResolvedRoute, params: ParameterTable) -> BuiltQuery:
        table = route.table
        identifier = self._require_identifier(route)

        statement = DeleteStatement(
            table=table.name,
            primary_key=table.primary_key,
            identifier=params.bind(identifier),
        )
        return BuiltQuery(
            method="delete",
            table=table,
            statement=statement.render(self.dialect),
            params=params,
            identifier=identifier,
        )
