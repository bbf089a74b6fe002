"""SQL dialect translation from Access to MySQL."""

import datetime
import decimal
import re
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

from ..models.catalog import DatabaseObject, ObjectKind

# Access PARAMETERS type names -> MySQL types
ACCESS_PARAMETER_TYPES = {
    "text": "VARCHAR(255)",
    "char": "VARCHAR(255)",
    "varchar": "VARCHAR(255)",
    "memo": "LONGTEXT",
    "long": "INT",
    "integer": "INT",
    "int": "INT",
    "short": "SMALLINT",
    "byte": "TINYINT UNSIGNED",
    "single": "FLOAT",
    "double": "DOUBLE",
    "currency": "DECIMAL(19,4)",
    "datetime": "DATETIME",
    "date": "DATETIME",
    "bit": "TINYINT(1)",
    "yesno": "TINYINT(1)",
    "guid": "CHAR(38)",
}

_PARAMETERS_RE = re.compile(r"^\s*PARAMETERS\s+(.*?);", re.IGNORECASE | re.DOTALL)
_PARAMETER_RE = re.compile(r"\[?([^\[\],]+?)\]?\s+(\w+)(?:\s*\(\s*\d+\s*\))?\s*$")
_BRACKET_RE = re.compile(r"\[([^\[\]]+)\]")
_DATE_LITERAL_RE = re.compile(r"#(\d{1,4}[-/]\d{1,2}[-/]\d{1,4}(?:\s+\d{1,2}:\d{2}(?::\d{2})?)?)#")
_SELECT_TOP_RE = re.compile(r"^SELECT\s+TOP\s+(\d+)\s+", re.IGNORECASE)


@dataclass(frozen=True)
class ColumnInfo:
    """A source column as described by a DB-API cursor."""
    name: str
    type_code: Any = None
    internal_size: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    null_ok: Optional[bool] = True

    @classmethod
    def from_description(cls, entry: Sequence[Any]) -> "ColumnInfo":
        """Build from one ``cursor.description`` entry."""
        padded = list(entry) + [None] * (7 - len(entry))
        return cls(
            name=padded[0],
            type_code=padded[1],
            internal_size=padded[3],
            precision=padded[4],
            scale=padded[5],
            null_ok=padded[6] if padded[6] is not None else True,
        )


class DialectTranslator(ABC):
    """
    Pluggable conversion between the source and target SQL dialects.

    The copiers only talk to the target through the statements produced
    here, so supporting a different target means a new translator.
    """

    paramstyle = "%s"

    @abstractmethod
    def quote(self, identifier: str) -> str:
        """Quote an identifier for the target."""
        pass

    @abstractmethod
    def column_type(self, column: ColumnInfo) -> str:
        """Target column type for a source column."""
        pass

    @abstractmethod
    def translate_sql(self, sql: str) -> str:
        """Translate a source SQL fragment to the target dialect."""
        pass

    @abstractmethod
    def routine_statements(self, obj: DatabaseObject, definition: str) -> List[str]:
        """Statements recreating a query or procedure on the target."""
        pass

    def create_table_statements(
        self,
        table: str,
        columns: List[ColumnInfo],
        drop_existing: bool = True
    ) -> List[str]:
        """Statements creating the target table."""
        if not columns:
            raise ValueError(f"Table {table} has no columns")

        column_defs = []
        for column in columns:
            definition = f"{self.quote(column.name)} {self.column_type(column)}"
            if column.null_ok is False:
                definition += " NOT NULL"
            column_defs.append(definition)

        statements = []
        if drop_existing:
            statements.append(f"DROP TABLE IF EXISTS {self.quote(table)}")
        statements.append(
            f"CREATE TABLE IF NOT EXISTS {self.quote(table)} (\n  " + ",\n  ".join(column_defs) + "\n)"
        )
        return statements

    def insert_statement(self, table: str, columns: List[ColumnInfo]) -> str:
        """Parameterised INSERT for a batch of rows."""
        names = ", ".join(self.quote(c.name) for c in columns)
        placeholders = ", ".join([self.paramstyle] * len(columns))
        return f"INSERT INTO {self.quote(table)} ({names}) VALUES ({placeholders})"

    def convert_value(self, value: Any) -> Any:
        """Convert one source value to a value the target driver accepts."""
        if isinstance(value, bytearray):
            return bytes(value)
        if isinstance(value, uuid.UUID):
            return str(value)
        return value

    def convert_row(self, row: Sequence[Any]) -> Tuple[Any, ...]:
        return tuple(self.convert_value(v) for v in row)


class MySQLTranslator(DialectTranslator):
    """
    Access to MySQL translation.

    Saved select queries become views; action and parameter queries become
    stored procedures whose PARAMETERS clause turns into IN parameters.
    """

    def __init__(self, paramstyle: str = "%s", varchar_limit: int = 255):
        self.paramstyle = paramstyle
        self.varchar_limit = varchar_limit

    def quote(self, identifier: str) -> str:
        return "`" + identifier.replace("`", "``") + "`"

    def column_type(self, column: ColumnInfo) -> str:
        type_code = column.type_code

        # bool before int: bool is an int subclass
        if type_code is bool:
            return "TINYINT(1)"
        if type_code is int:
            return "BIGINT" if (column.precision or 0) > 10 else "INT"
        if type_code is float:
            return "DOUBLE"
        if type_code is decimal.Decimal:
            precision = column.precision or 19
            scale = column.scale if column.scale is not None else 4
            return f"DECIMAL({min(precision, 65)},{min(scale, 30)})"
        if type_code is datetime.datetime:
            return "DATETIME"
        if type_code is datetime.date:
            return "DATE"
        if type_code is datetime.time:
            return "TIME"
        if type_code in (bytes, bytearray):
            return "LONGBLOB"
        if type_code is uuid.UUID:
            return "CHAR(38)"
        if type_code is str and column.internal_size and column.internal_size <= self.varchar_limit:
            return f"VARCHAR({column.internal_size})"
        return "LONGTEXT"

    def translate_sql(self, sql: str) -> str:
        translated = _BRACKET_RE.sub(lambda m: self.quote(m.group(1)), sql)
        translated = _DATE_LITERAL_RE.sub(lambda m: "'" + m.group(1).replace("/", "-") + "'", translated)
        translated = translated.strip().rstrip(";").strip()

        top = _SELECT_TOP_RE.match(translated)
        if top:
            translated = f"SELECT {translated[top.end():]} LIMIT {top.group(1)}"
        return translated

    def parse_parameters(self, definition: str) -> Tuple[List[Tuple[str, str]], str]:
        """
        Split an Access PARAMETERS clause from a query body.

        Returns:
            Tuple of ([(name, mysql_type), ...], remaining body)
        """
        match = _PARAMETERS_RE.match(definition)
        if not match:
            return [], definition

        parameters = []
        for declaration in match.group(1).split(","):
            declaration = declaration.strip()
            if not declaration:
                continue
            param = _PARAMETER_RE.match(declaration)
            if not param:
                raise ValueError(f"Unrecognised parameter declaration: {declaration}")
            name, access_type = param.group(1).strip(), param.group(2).lower()
            parameters.append((name, ACCESS_PARAMETER_TYPES.get(access_type, "LONGTEXT")))

        return parameters, definition[match.end():]

    def routine_statements(self, obj: DatabaseObject, definition: str) -> List[str]:
        name = self.quote(obj.name)

        if obj.kind == ObjectKind.QUERY:
            return [f"CREATE OR REPLACE VIEW {name} AS {self.translate_sql(definition)}"]

        if obj.kind == ObjectKind.PROCEDURE:
            parameters, body = self.parse_parameters(definition)
            # Parameters are referenced as plain variables inside the routine
            for param_name, _ in parameters:
                body = body.replace(f"[{param_name}]", self._variable(param_name))
            signature = ", ".join(f"IN {self._variable(p)} {t}" for p, t in parameters)
            return [
                f"DROP PROCEDURE IF EXISTS {name}",
                f"CREATE PROCEDURE {name}({signature})\nBEGIN\n  {self.translate_sql(body)};\nEND",
            ]

        raise ValueError(f"{obj.kind.value} objects are not routines")

    @staticmethod
    def _variable(name: str) -> str:
        return "p_" + re.sub(r"\W", "_", name)
