"""
FILTER COMPILER - (field:operator:value) terms to a bound SQL predicate

Grammar:
    filter      := term | "(" filter ")" | filter connective filter
    term        := "(" field ":" operator ":" value ")"
    connective  := "and" | "or"

Example:
    (Name:lk:A%)and((Age:gte:18)or(Age:nl:))
    ->  (("person"."Name" LIKE :param1) AND ((... >= :param2) OR (... IS NULL)))

Every value goes through the binder, field names are checked against the
table's columns. The first problem found raises FilterSyntaxError and
nothing further is built.
"""

import re
from typing import Any, Callable, List, Tuple

from sqlrest.core.errors import FilterSyntaxError
from sqlrest.core.rest.dialects import Dialect
from sqlrest.core.schemas import TableSchema

SIMPLE_OPERATORS = {
    "in": "IN",
    "nin": "NOT IN",
    "eq": "=",
    "neq": "<>",
    "lk": "LIKE",
    "nlk": "NOT LIKE",
    "nl": "IS NULL",
    "nnl": "IS NOT NULL",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
}

LIST_OPERATORS = ("in", "nin")
NULL_OPERATORS = ("nl", "nnl")
RANGE_OPERATORS = {"bt": "between", "nbt": "not between"}

# A term is tried before a bare parenthesis, so "(a:eq:1)" never splits up.
# Anything these alternatives cannot consume is residue and gets rejected.
TOKEN_PATTERN = re.compile(
    r"""
      (?P<term>\((?P<field>[^():]*):(?P<operator>[^():]*):(?P<value>[^()]*)\))
    | (?P<open>\()
    | (?P<close>\))
    | (?P<connective>\b(?:and|or)\b)
    | (?P<space>\s+)
    """,
    re.VERBOSE | re.IGNORECASE,
)

Binder = Callable[[Any], str]


def tokenize(filter_value: str) -> List[Tuple[str, re.Match]]:
    if ";" in filter_value:
        raise FilterSyntaxError("Semicolons are not allowed in the filter parameter")

    residue = TOKEN_PATTERN.sub("", filter_value)
    if residue:
        raise FilterSyntaxError(
            f"Invalid filter. The following characters are not allowed: {residue}"
        )

    # No residue means the matches tile the whole string
    return [
        (match.lastgroup, match)
        for match in TOKEN_PATTERN.finditer(filter_value)
        if match.group("space") is None
    ]


def compile_term(
    field: str, operator: str, value: str, table: TableSchema, bind: Binder, dialect: Dialect
) -> str:
    column = table.column(field.strip())
    if column is None:
        raise FilterSyntaxError(f"Unknown field '{field.strip()}' in filter")

    # Qualified with the table so included tables with the same column names don't clash
    left = dialect.column(table.name, column.name)
    operator = operator.strip().lower()

    if operator in NULL_OPERATORS:
        return f"{left} {SIMPLE_OPERATORS[operator]}"

    if operator in LIST_OPERATORS:
        placeholders = ", ".join(bind(item) for item in value.split(","))
        return f"{left} {SIMPLE_OPERATORS[operator]} ({placeholders})"

    if operator in SIMPLE_OPERATORS:
        return f"{left} {SIMPLE_OPERATORS[operator]} {bind(value)}"

    if operator in RANGE_OPERATORS:
        values = value.split(",")
        if len(values) != 2:
            raise FilterSyntaxError(
                f"Must specify two values separated by comma in "
                f"'{RANGE_OPERATORS[operator]}' filter"
            )
        negate = "NOT " if operator == "nbt" else ""
        return f"{left} {negate}BETWEEN {bind(values[0])} AND {bind(values[1])}"

    if operator in ("lkc", "nlkc"):
        return dialect.case_sensitive_like(left, value, bind, operator == "nlkc")
    if operator in ("ct", "nct"):
        return dialect.contains(left, value, bind, operator == "nct")
    if operator in ("ft", "nft"):
        return dialect.freetext(left, value, bind, operator == "nft")

    raise FilterSyntaxError(f"Unknown operator '{operator}'")


def compile_filter(
    filter_value: str, table: TableSchema, bind: Binder, dialect: Dialect
) -> str:
    """
    Compile a filter query parameter into a parenthesized WHERE fragment.

    Args:
        filter_value: Raw filter parameter.
        table: Schema of the table the fields belong to.
        bind: Callback returning the placeholder for a value.
        dialect: Renders the backend specific operators.

    Raises:
        FilterSyntaxError on the first invalid construct.
    """
    if not filter_value.lstrip().startswith("("):
        filter_value = f"({filter_value})"

    tokens = tokenize(filter_value)

    parts = []
    depth = 0
    previous = None
    for kind, match in tokens:
        expects_operand = previous in (None, "open", "connective")

        if kind in ("term", "open") and not expects_operand:
            raise FilterSyntaxError(
                f"Missing 'and'/'or' before '{match.group(0)}' in filter"
            )
        if kind in ("connective", "close") and expects_operand:
            raise FilterSyntaxError(f"Unexpected '{match.group(0)}' in filter")

        if kind == "term":
            predicate = compile_term(
                match.group("field"),
                match.group("operator"),
                match.group("value"),
                table,
                bind,
                dialect,
            )
            parts.append(f"({predicate})")
        elif kind == "open":
            depth += 1
            parts.append("(")
        elif kind == "close":
            depth -= 1
            if depth < 0:
                raise FilterSyntaxError("Unbalanced ')' in filter")
            parts.append(")")
        else:
            parts.append(f" {match.group(0).upper()} ")
        previous = kind

    if depth != 0:
        raise FilterSyntaxError("Unbalanced '(' in filter")
    if previous in (None, "open", "connective"):
        raise FilterSyntaxError("Filter ends without a condition")

    return "(" + "".join(parts) + ")"
