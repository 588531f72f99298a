"""
RESULT RESHAPER - flat joined rows back into nested records

Rows arrive sorted by the base identifier with every column aliased as
table_column; the layout maps each alias back to its table and column.
Consecutive rows sharing the base identifier fold into one
record:

    owner_id  owner_name  pet_id  pet_name
    1         Ann         5       Rex
    1         Ann         6       Tom
    2         Bob         NULL    NULL

    ->  [{"id": 1, "name": "Ann", "pet": [{"id": 5, ...}, {"id": 6, ...}]},
         {"id": 2, "name": "Bob", "pet": []}]

Many-to-one tables become a nested object under the table name. Every
one-to-many table becomes a list, empty when nothing is related. A row
contributes at most one sub-record per one-to-many table, and only when
that table's identifier in the row is not NULL.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlrest.core.rest.plan import TOTAL_ROWS
from sqlrest.core.schemas import Paging

Record = Dict[str, Any]


@dataclass(frozen=True)
class RowLayout:
    base_table: str
    primary_key: str
    # one-to-many table -> its identifier column
    one_to_many: Mapping[str, str] = field(default_factory=dict)
    many_to_one: Sequence[str] = ()
    # alias -> (table, column) as projected by the builder
    columns: Mapping[str, Tuple[str, str]] = field(default_factory=dict)

    @property
    def tables(self) -> List[str]:
        # Longest first, so "order_line_x" is not read as table "order"
        names = [self.base_table, *self.one_to_many, *self.many_to_one]
        return sorted(names, key=len, reverse=True)

    def alias(self, table: str, column: str) -> str:
        wanted = (table.lower(), column.lower())
        for alias, (owner, name) in self.columns.items():
            if (owner.lower(), name.lower()) == wanted:
                return alias
        return f"{table}_{column}"

    def owner(self, key: str) -> Optional[Tuple[str, str]]:
        """(table, column) a result key belongs to, None for anything else."""
        if not self.columns:
            return split_alias(key, self.tables)
        if key in self.columns:
            return self.columns[key]
        lower = key.lower()
        return next(
            (owner for alias, owner in self.columns.items() if alias.lower() == lower), None
        )


def split_alias(key: str, tables: Iterable[str]) -> Optional[Tuple[str, str]]:
    lower = key.lower()
    for table in tables:
        prefix = f"{table.lower()}_"
        if lower.startswith(prefix) and len(key) > len(prefix):
            return table, key[len(prefix):]
    return None


def _merge(target: Record, column: str, value: Any) -> None:
    # A NULL never hides a value an earlier row already supplied
    if value is not None or column not in target:
        target[column] = value


def reshape(rows: Sequence[Mapping[str, Any]], layout: RowLayout) -> List[Record]:
    """Group rows into records. Rows must already be ordered by base identifier."""
    base_key = layout.alias(layout.base_table, layout.primary_key)
    identifier_keys = {
        table: layout.alias(table, key) for table, key in layout.one_to_many.items()
    }

    records: List[Record] = []
    current: Optional[Record] = None
    current_id: Any = None
    # Every row carries the same keys, resolve each one once
    owners: Dict[str, Optional[Tuple[str, str]]] = {}

    for row in rows:
        base_id = _lookup(row, base_key)
        if current is None or base_id != current_id:
            current = {}
            records.append(current)
            current_id = base_id

        if TOTAL_ROWS in row:
            current[TOTAL_ROWS] = row[TOTAL_ROWS]

        appended: Dict[str, Record] = {}
        for key, value in row.items():
            if key not in owners:
                owners[key] = layout.owner(key)
            if owners[key] is None:
                continue
            table, column = owners[key]

            if table == layout.base_table:
                _merge(current, column, value)
            elif table in layout.one_to_many:
                identifier = _lookup(row, identifier_keys[table])
                if identifier is None:
                    continue
                if table not in appended:
                    appended[table] = {}
                    current.setdefault(table, []).append(appended[table])
                appended[table][column] = value
            else:
                _merge(current.setdefault(table, {}), column, value)

    for record in records:
        for table in layout.one_to_many:
            record.setdefault(table, [])
    return records


def _lookup(row: Mapping[str, Any], key: str) -> Any:
    if key in row:
        return row[key]
    lower = key.lower()
    return next((value for name, value in row.items() if name.lower() == lower), None)


# =========================
# Paging
# =========================
def total_rows(rows: Sequence[Mapping[str, Any]]) -> int:
    return int(rows[0].get(TOTAL_ROWS) or 0) if rows else 0


def strip_total(records: List[Record]) -> List[Record]:
    for record in records:
        record.pop(TOTAL_ROWS, None)
    return records


def paging_metadata(
    records: Sequence[Mapping[str, Any]],
    row_count: int,
    page_size: int,
    page_nr: int,
    primary_key: str,
) -> Paging:
    page_count = math.ceil(row_count / page_size)
    return Paging(
        row_count=row_count,
        page_size=page_size,
        page_count=page_count,
        page_nr=page_nr,
        first_index_on_page=records[0].get(primary_key, 0) if records else 0,
        last_index_on_page=records[-1].get(primary_key, 0) if records else 0,
        has_previous_page=page_nr > 1,
        has_next_page=page_nr < page_count,
        is_first_page=page_nr == 1,
        is_last_page=page_nr == page_count,
    )
