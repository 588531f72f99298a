import re
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Tuple

from sqlalchemy import Float, Integer, String, bindparam
from sqlalchemy.sql.elements import BindParameter

NUMBER_PATTERN = re.compile(r"^-?\d+(\.\d+)?$", re.ASCII)

# Signed 64-bit, the widest integer any backend driver binds
INTEGER_MIN = -(2**63)
INTEGER_MAX = 2**63 - 1

WIRE_TYPES = {
    "integer": Integer,
    "float": Float,
    "string": String,
}


def infer_value(value: Any) -> Tuple[Any, str]:
    """
    Decide how a value travels to the backend.

    Integral numbers (or strings spelling one) bind as integers, other
    numbers as floats, everything else as a string. None stays NULL.

    Examples:
        "12"   -> (12, "integer")
        "1.5"  -> (1.5, "float")
        "2.0"  -> (2, "integer")
        "abc"  -> ("abc", "string")

    Integers outside the signed 64-bit range travel as their text.
    """
    if value is None:
        return None, "string"
    if isinstance(value, bool):
        return int(value), "integer"
    if isinstance(value, (int, float)):
        number = value
    else:
        text = str(value)
        if not NUMBER_PATTERN.match(text):
            return text, "string"
        number = float(text) if "." in text else int(text)

    if isinstance(number, float):
        if number.is_integer() and INTEGER_MIN <= number <= INTEGER_MAX:
            return int(number), "integer"
        return number, "float"
    if INTEGER_MIN <= number <= INTEGER_MAX:
        return number, "integer"
    return str(value), "string"


@dataclass(frozen=True)
class BoundValue:
    value: Any
    wire_type: str


class ParameterTable:
    """
    Ordered, append-only parameters of one statement.

    Built fresh for every request; bind() is the callback handed to the
    filter compiler and the query builder, and returns the placeholder to
    put in the statement text.
    """

    def __init__(self, prefix: str = "param"):
        self.prefix = prefix
        self._values: Dict[str, BoundValue] = {}

    def bind(self, value: Any) -> str:
        name = f"{self.prefix}{len(self._values) + 1}"
        self._values[name] = BoundValue(*infer_value(value))
        return f":{name}"

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __getitem__(self, name: str) -> BoundValue:
        return self._values[name.lstrip(":")]

    def values(self) -> Dict[str, Any]:
        return {name: bound.value for name, bound in self._values.items()}

    def bindparams(self) -> List[BindParameter]:
        return [
            bindparam(name, bound.value, type_=WIRE_TYPES[bound.wire_type]())
            for name, bound in self._values.items()
        ]
