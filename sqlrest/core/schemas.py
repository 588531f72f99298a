from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr
from pydantic.alias_generators import to_camel


# =========================
# Enums
# =========================
class SemanticType(str, Enum):
    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"

    @classmethod
    def from_openapi(cls, value: Optional[str]) -> "SemanticType":
        # "number" is how the generated description spells float
        return {
            "integer": cls.INTEGER,
            "boolean": cls.INTEGER,
            "number": cls.FLOAT,
            "float": cls.FLOAT,
        }.get((value or "").lower(), cls.STRING)

    def to_openapi(self) -> str:
        return "number" if self is SemanticType.FLOAT else self.value


# =========================
# TABLE SCHEMA
# =========================
class ColumnSchema(BaseModel):
    name: str
    type: SemanticType = SemanticType.STRING

    model_config = ConfigDict(frozen=True)


class TableSchema(BaseModel):
    """
    Ordered column list of one table with case-insensitive lookups.
    """

    name: str
    columns: List[ColumnSchema]
    primary_key: str

    model_config = ConfigDict(frozen=True)

    _index: Dict[str, ColumnSchema] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context: Any) -> None:
        self._index = {column.name.lower(): column for column in self.columns}

    @property
    def names(self) -> List[str]:
        return [column.name for column in self.columns]

    def column(self, name: str) -> Optional[ColumnSchema]:
        return self._index.get(name.lower())

    def has(self, name: str) -> bool:
        return name.lower() in self._index


# =========================
# LINK
# =========================
class LinkDefinition(BaseModel):
    """
    Foreign key relation exposed as an include.

    level >= 1 joins at most one related row (many-to-one),
    level 0 yields a collection (one-to-many).
    """

    child_table: str = Field(alias="x-childTable")
    child_column: str = Field(alias="x-childColumn")
    parent_table: str = Field(alias="x-parentTable")
    parent_column: str = Field(alias="x-parentColumn")
    result_table: str = Field(alias="x-resultTable")
    level: int = Field(alias="x-level")
    description: str = ""
    operation_id: Optional[str] = Field(default=None, alias="operationId")

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    @property
    def is_many_to_one(self) -> bool:
        return self.level >= 1


# =========================
# RESPONSE ENVELOPE
# =========================
class ResponseInfo(BaseModel):
    method: str
    url: str
    code: str = "200"
    message: Optional[str] = None
    query: Optional[str] = None


class Paging(BaseModel):
    row_count: int
    page_size: int
    page_count: int
    page_nr: int
    first_index_on_page: Any = 0
    last_index_on_page: Any = 0
    has_previous_page: bool
    has_next_page: bool
    is_first_page: bool
    is_last_page: bool

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def envelope(
    result: Any, response: ResponseInfo, paging: Optional[Paging] = None
) -> Dict[str, Any]:
    # Built by hand so null values inside the result survive serialization
    body: Dict[str, Any] = {"result": result}
    if paging is not None:
        body["paging"] = paging.model_dump(by_alias=True)
    body["response"] = response.model_dump(exclude_none=True)
    return body
