"""
Statement plans rendered to SQL once, at the end of building.

A GET becomes a chain of named stages (common table expressions):

    data_cte          base table + many-to-one joins + WHERE
    fetch_cte         the current page of data_cte       (only with includes)
    union_cte_N       one per one-to-many include, joined to fetch_cte
    count_cte         COUNT(*) over data_cte

and a final SELECT that unions the page with the union stages, cross
joins the count and orders by the base identifier.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from sqlrest.core.rest.dialects import Dialect
from sqlrest.core.schemas import SemanticType

TOTAL_ROWS = "TotalRows"


@dataclass(frozen=True)
class Projection:
    """
    One output column of a stage.

    Rendered from `expression` when given, else from `column`
    (a (table or stage, column) pair), else as a NULL of `type`.
    """

    alias: str
    column: Optional[Tuple[str, str]] = None
    expression: Optional[str] = None
    type: SemanticType = SemanticType.STRING

    def render(self, dialect: Dialect) -> str:
        if self.expression is not None:
            source = self.expression
        elif self.column is not None:
            source = dialect.column(*self.column)
        else:
            source = dialect.null(self.type)
        return f"{source} AS {dialect.quote(self.alias)}"


@dataclass(frozen=True)
class Join:
    table: str
    left: Tuple[str, str]
    right: Tuple[str, str]

    def render(self, dialect: Dialect) -> str:
        return (
            f"LEFT OUTER JOIN {dialect.quote(self.table)} "
            f"ON {dialect.column(*self.left)} = {dialect.column(*self.right)}"
        )


@dataclass(frozen=True)
class Page:
    offset: str
    fetch: str


@dataclass
class Stage:
    name: str
    source: str
    projections: List[Projection] = field(default_factory=list)
    joins: List[Join] = field(default_factory=list)
    where: List[str] = field(default_factory=list)
    order_by: Optional[str] = None
    page: Optional[Page] = None

    @property
    def aliases(self) -> List[str]:
        return [projection.alias for projection in self.projections]

    def render(self, dialect: Dialect) -> str:
        columns = ", ".join(p.render(dialect) for p in self.projections) or "*"
        lines = [f"SELECT {columns}", f"FROM {dialect.quote(self.source)}"]
        lines.extend(join.render(dialect) for join in self.joins)
        if self.where:
            lines.append("WHERE " + " AND ".join(self.where))
        lines.extend(_order_and_page(self.order_by, self.page, dialect))
        return "\n".join(lines)


@dataclass
class QueryPlan:
    stages: List[Stage]
    union: List[str]
    count_stage: Optional[str] = None
    order_by: Optional[str] = None
    page: Optional[Page] = None

    def stage(self, name: str) -> Stage:
        return next(stage for stage in self.stages if stage.name == name)

    def render(self, dialect: Dialect) -> str:
        ctes = ",\n".join(
            f"{dialect.quote(stage.name)} AS (\n{stage.render(dialect)}\n)"
            for stage in self.stages
        )

        if len(self.union) == 1:
            source = dialect.quote(self.union[0])
        else:
            selects = "\nUNION ALL\n".join(
                f"SELECT * FROM {dialect.quote(name)}" for name in self.union
            )
            source = f"(\n{selects}\n) AS x"

        lines = [f"WITH {ctes}", f"SELECT * FROM {source}"]
        if self.count_stage:
            lines.append(f"CROSS JOIN {dialect.quote(self.count_stage)}")
        lines.extend(_order_and_page(self.order_by, self.page, dialect))
        return "\n".join(lines)


def _order_and_page(order_by: Optional[str], page: Optional[Page], dialect: Dialect) -> List[str]:
    lines = []
    if order_by:
        lines.append(f"ORDER BY {order_by}")
    if page is not None:
        lines.append(dialect.paging(page.offset, page.fetch))
    return lines


# =========================
# Data modification
# =========================
@dataclass
class InsertStatement:
    table: str
    values: List[Tuple[str, str]]
    primary_key: str

    def render(self, dialect: Dialect) -> str:
        output, returning = dialect.insert_identity(self.primary_key)
        columns = ", ".join(dialect.quote(column) for column, _ in self.values)
        placeholders = ", ".join(placeholder for _, placeholder in self.values)
        parts = [f"INSERT INTO {dialect.quote(self.table)} ({columns})", output]
        parts.append(f"VALUES ({placeholders})")
        parts.append(returning)
        return " ".join(part for part in parts if part)


@dataclass
class UpdateStatement:
    table: str
    assignments: List[Tuple[str, str]]
    primary_key: str
    identifier: str

    def render(self, dialect: Dialect) -> str:
        assignments = ", ".join(
            f"{dialect.quote(column)} = {value}" for column, value in self.assignments
        )
        return (
            f"UPDATE {dialect.quote(self.table)} SET {assignments} "
            f"WHERE {dialect.quote(self.primary_key)} = {self.identifier}"
        )


@dataclass
class DeleteStatement:
    table: str
    primary_key: str
    identifier: str

    def render(self, dialect: Dialect) -> str:
        return (
            f"DELETE FROM {dialect.quote(self.table)} "
            f"WHERE {dialect.quote(self.primary_key)} = {self.identifier}"
        )
