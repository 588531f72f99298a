"""
SCHEMA INTROSPECTION - read tables, views and foreign keys from the catalog

Purpose: collect what the description generator needs, grouped per table:
    - every column with its SQL type, length, computed/identity/nullable
      flags and numeric precision
    - every foreign key, seen from both ends:
        child table  -> parent table   level 1 (many-to-one)
        parent table -> child table    level 0 (one-to-many)

The catalog is read through the SQLAlchemy inspector, so any backend with
a SQLAlchemy dialect can be described.
"""

import fnmatch
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import Boolean, Float, Integer, Numeric, inspect
from sqlalchemy.engine import Connection, Dialect
from sqlalchemy.ext.asyncio import AsyncConnection
from sqlalchemy.types import NullType, TypeEngine

from sqlrest.core.schemas import SemanticType

logger = logging.getLogger(__name__)


@dataclass
class ColumnInfo:
    name: str
    type: str
    semantic_type: SemanticType
    length: Optional[int] = None
    precision: Optional[int] = None
    computed: bool = False
    identity: bool = False
    nullable: bool = True


@dataclass
class TableInfo:
    name: str
    columns: List[ColumnInfo]
    primary_key: Optional[str] = None
    is_view: bool = False


@dataclass
class RelationInfo:
    path: str
    child_table: str
    child_column: str
    parent_table: str
    parent_column: str
    result_table: str
    level: int

    @property
    def name(self) -> str:
        return self.path.split(".", 1)[1]


@dataclass
class SchemaDescription:
    tables: Dict[str, TableInfo] = field(default_factory=dict)
    # main table -> relations starting there
    relations: Dict[str, List[RelationInfo]] = field(default_factory=dict)


def semantic_type(sql_type: TypeEngine) -> SemanticType:
    """Map a reflected column type onto integer / float / string."""
    if isinstance(sql_type, (Integer, Boolean)):
        return SemanticType.INTEGER
    # Float derives from Numeric, check it first
    if isinstance(sql_type, Float):
        return SemanticType.FLOAT
    if isinstance(sql_type, Numeric):
        return SemanticType.FLOAT if sql_type.scale else SemanticType.INTEGER
    return SemanticType.STRING


def is_excluded(table: str, exclude: Sequence[str]) -> bool:
    return any(fnmatch.fnmatchcase(table.lower(), pattern.lower()) for pattern in exclude)


def _column_info(column: Dict[str, Any], dialect: Dialect) -> ColumnInfo:
    sql_type = column["type"]
    return ColumnInfo(
        name=str(column["name"]),
        type="" if isinstance(sql_type, NullType) else sql_type.compile(dialect=dialect),
        semantic_type=semantic_type(sql_type),
        length=getattr(sql_type, "length", None),
        precision=getattr(sql_type, "precision", None),
        computed="computed" in column,
        identity="identity" in column or column.get("autoincrement") is True,
        nullable=bool(column.get("nullable", True)),
    )


def _relation_name(used: Dict[str, List[RelationInfo]], main: str, result: str, column: str) -> str:
    taken = {relation.name.lower() for relation in used.get(main, [])}
    name = result
    if name.lower() in taken:
        name = f"{result}_{column}"
    return f"{main}.{name}"


def read_schema(conn: Connection, exclude: Sequence[str] = ()) -> SchemaDescription:
    inspector = inspect(conn)
    description = SchemaDescription()

    # Names may come back as quoted_name, which the YAML dumper does not know
    names = [(str(name), False) for name in inspector.get_table_names()]
    names += [(str(name), True) for name in inspector.get_view_names()]

    for name, is_view in names:
        if is_excluded(name, exclude):
            continue
        columns = [_column_info(column, conn.dialect) for column in inspector.get_columns(name)]
        primary = [] if is_view else inspector.get_pk_constraint(name).get("constrained_columns") or []
        description.tables[name] = TableInfo(
            name=name,
            columns=columns,
            primary_key=str(primary[0]) if primary else None,
            is_view=is_view,
        )

    for name, table in description.tables.items():
        if table.is_view:
            continue
        for foreign_key in inspector.get_foreign_keys(name):
            parent = str(foreign_key["referred_table"])
            if parent not in description.tables:
                continue
            if parent == name:
                logger.debug(f"Skipping self reference on '{name}'")
                continue

            child_column = str(foreign_key["constrained_columns"][0])
            parent_column = str(foreign_key["referred_columns"][0])
            relations = description.relations

            many_to_one = RelationInfo(
                path=_relation_name(relations, name, parent, child_column),
                child_table=name,
                child_column=child_column,
                parent_table=parent,
                parent_column=parent_column,
                result_table=parent,
                level=1,
            )
            relations.setdefault(name, []).append(many_to_one)

            one_to_many = RelationInfo(
                path=_relation_name(relations, parent, name, child_column),
                child_table=name,
                child_column=child_column,
                parent_table=parent,
                parent_column=parent_column,
                result_table=name,
                level=0,
            )
            relations.setdefault(parent, []).append(one_to_many)

    logger.info(
        f"Read {len(description.tables)} tables and "
        f"{sum(len(r) for r in description.relations.values())} relations from the catalog"
    )
    return description


async def describe_schema(conn: AsyncConnection, exclude: Sequence[str] = ()) -> SchemaDescription:
    # The inspector is synchronous, hand it the sync side of the connection
    return await conn.run_sync(read_schema, exclude)
