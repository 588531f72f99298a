"""
Backend specific SQL fragments.

Everything else the engine renders is plain SQL shared by all backends;
only paging, the case-sensitive and full-text filter operators, NULL
padding, returning the generated identifier of an INSERT and the error
wrapper differ per backend.
"""

from typing import Any, Callable, Optional, Tuple

from sqlalchemy.dialects import mssql, mysql, postgresql, sqlite
from sqlalchemy.engine import Dialect as SADialect
from sqlalchemy.engine.default import DefaultDialect

from sqlrest.core.schemas import SemanticType

Binder = Callable[[Any], str]


def _not(negate: bool) -> str:
    return "NOT " if negate else ""


class Dialect:
    name = "default"

    def __init__(self, sa_dialect: Optional[SADialect] = None):
        self.sa_dialect = sa_dialect or DefaultDialect()

    def quote(self, identifier: str) -> str:
        # Quotes only when the backend requires it (mixed case, reserved words)
        return self.sa_dialect.identifier_preparer.quote(identifier)

    def column(self, table: str, column: str) -> str:
        return f"{self.quote(table)}.{self.quote(column)}"

    def paging(self, offset: str, fetch: str) -> str:
        return f"OFFSET {offset} ROWS FETCH NEXT {fetch} ROWS ONLY"

    def null(self, semantic_type: SemanticType) -> str:
        return "NULL"

    def case_sensitive_like(self, left: str, value: Any, bind: Binder, negate: bool) -> str:
        return f"{left} {_not(negate)}LIKE {bind(value)}"

    def contains(self, left: str, value: Any, bind: Binder, negate: bool) -> str:
        return f"{left} {_not(negate)}LIKE '%' || {bind(value)} || '%'"

    def freetext(self, left: str, value: Any, bind: Binder, negate: bool) -> str:
        return self.contains(left, value, bind, negate)

    def insert_identity(self, primary_key: str) -> Tuple[str, str]:
        """(clause placed before VALUES, clause appended to the statement)"""
        return "", ""

    def wrap(self, statement: str) -> str:
        return statement


class SQLServerDialect(Dialect):
    name = "mssql"
    collation = "SQL_Latin1_General_CP1_CS_AS"

    def __init__(self, sa_dialect: Optional[SADialect] = None, clear_error_function: str = ""):
        super().__init__(sa_dialect or mssql.dialect())
        self.clear_error_function = clear_error_function

    def case_sensitive_like(self, left, value, bind, negate):
        return f"{left} {_not(negate)}LIKE {bind(value)} COLLATE {self.collation}"

    def contains(self, left, value, bind, negate):
        return f"{_not(negate)}CONTAINS({left}, {bind(value)})"

    def freetext(self, left, value, bind, negate):
        return f"{_not(negate)}FREETEXT({left}, {bind(value)})"

    def insert_identity(self, primary_key):
        return f"OUTPUT inserted.{self.quote(primary_key)}", ""

    def wrap(self, statement):
        # Constraint failures surface the clarified message when the database offers one
        if self.clear_error_function:
            schema, _, function = self.clear_error_function.rpartition(".")
            message = f"""
                    IF EXISTS (
                        SELECT 1
                        FROM INFORMATION_SCHEMA.ROUTINES
                        WHERE SPECIFIC_SCHEMA = '{schema or "dbo"}'
                        AND SPECIFIC_NAME = '{function}'
                        AND ROUTINE_TYPE = 'FUNCTION'
                    )
                        SET @Msg = {self.clear_error_function}();
                    ELSE
                        SET @Msg = ERROR_MESSAGE();"""
        else:
            message = "SET @Msg = ERROR_MESSAGE();"

        return f"""
            SET NOCOUNT ON;
            BEGIN TRY
                {statement}
            END TRY
            BEGIN CATCH
                DECLARE @Msg NVARCHAR(4000);
                {message}
                THROW 60001, @Msg, 1;
            END CATCH
        """


class PostgreSQLDialect(Dialect):
    name = "postgresql"

    null_types = {
        SemanticType.INTEGER: "INTEGER",
        SemanticType.FLOAT: "DOUBLE PRECISION",
        SemanticType.STRING: "TEXT",
    }

    def __init__(self, sa_dialect: Optional[SADialect] = None):
        super().__init__(sa_dialect or postgresql.dialect())

    def null(self, semantic_type):
        # Union stages need typed NULLs, an untyped one resolves to text
        return f"CAST(NULL AS {self.null_types[semantic_type]})"

    def contains(self, left, value, bind, negate):
        return f"{_not(negate)}(to_tsvector({left}) @@ to_tsquery({bind(value)}))"

    def freetext(self, left, value, bind, negate):
        return f"{_not(negate)}(to_tsvector({left}) @@ plainto_tsquery({bind(value)}))"

    def insert_identity(self, primary_key):
        return "", f"RETURNING {self.quote(primary_key)}"


class SQLiteDialect(Dialect):
    name = "sqlite"

    def __init__(self, sa_dialect: Optional[SADialect] = None):
        super().__init__(sa_dialect or sqlite.dialect())

    def paging(self, offset, fetch):
        return f"LIMIT {fetch} OFFSET {offset}"

    def case_sensitive_like(self, left, value, bind, negate):
        # LIKE ignores case in SQLite, GLOB does not
        return f"{left} {_not(negate)}GLOB {bind(like_to_glob(str(value)))}"


class MySQLDialect(Dialect):
    name = "mysql"

    def __init__(self, sa_dialect: Optional[SADialect] = None):
        super().__init__(sa_dialect or mysql.dialect())

    def paging(self, offset, fetch):
        return f"LIMIT {fetch} OFFSET {offset}"

    def case_sensitive_like(self, left, value, bind, negate):
        return f"{left} {_not(negate)}LIKE BINARY {bind(value)}"

    def contains(self, left, value, bind, negate):
        return f"{left} {_not(negate)}LIKE CONCAT('%', {bind(value)}, '%')"


def like_to_glob(pattern: str) -> str:
    """Translate LIKE wildcards to GLOB ones, escaping GLOB's own."""
    escaped = []
    for char in pattern:
        if char in "*?[":
            escaped.append(f"[{char}]")
        elif char == "%":
            escaped.append("*")
        elif char == "_":
            escaped.append("?")
        else:
            escaped.append(char)
    return "".join(escaped)


DIALECTS = {
    "mssql": SQLServerDialect,
    "postgresql": PostgreSQLDialect,
    "sqlite": SQLiteDialect,
    "mysql": MySQLDialect,
    "mariadb": MySQLDialect,
}


def get_dialect(sa_dialect: SADialect, clear_error_function: str = "") -> Dialect:
    dialect_class = DIALECTS.get(sa_dialect.name, Dialect)
    if dialect_class is SQLServerDialect:
        return SQLServerDialect(sa_dialect, clear_error_function)
    return dialect_class(sa_dialect)


def dialect_named(name: str) -> Dialect:
    """Dialect without a live connection, for planning and tests."""
    dialect_class = DIALECTS.get(name, Dialect)
    return dialect_class()
