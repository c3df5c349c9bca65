"""
Type catalog for Mimer SQL type codes.

This module provides:
- Type predicates used to pick the getter/setter for a column or parameter
- resolve_type_name: human-readable SQL type name for a type code
- is_nullable: nullability encoded in a raw column type code
- Column: column metadata captured from a prepared statement

Type codes reported by the engine are signed. For the generic types a
negative code marks a nullable column; the native types instead come in
NOT NULL / NULLABLE code pairs. All predicates work on the absolute value.
"""
import logging
from typing import Any, Self

from mimerdb import constants as c

logger = logging.getLogger(__name__)

INT32_TYPES = frozenset({
    c.MIMER_T_INTEGER, c.MIMER_T_SMALLINT,
    c.MIMER_T_UNSIGNED_INTEGER, c.MIMER_T_UNSIGNED_SMALLINT,
    c.MIMER_NATIVE_SMALLINT, c.MIMER_NATIVE_SMALLINT_NULLABLE,
    c.MIMER_NATIVE_INTEGER, c.MIMER_NATIVE_INTEGER_NULLABLE,
    })

INT64_TYPES = frozenset({
    c.MIMER_T_BIGINT, c.MIMER_T_UNSIGNED_BIGINT,
    c.MIMER_NATIVE_BIGINT, c.MIMER_NATIVE_BIGINT_NULLABLE,
    })

DOUBLE_TYPES = frozenset({
    c.MIMER_T_DOUBLE, c.MIMER_NATIVE_DOUBLE, c.MIMER_NATIVE_DOUBLE_NULLABLE,
    })

FLOAT_TYPES = frozenset({
    c.MIMER_T_FLOAT, c.MIMER_T_REAL, c.MIMER_NATIVE_REAL, c.MIMER_NATIVE_REAL_NULLABLE,
    })

BLOB_TYPES = frozenset({
    c.MIMER_BLOB, c.MIMER_BLOB_LOCATOR, c.MIMER_NATIVE_BLOB, c.MIMER_NATIVE_BLOB_LOCATOR,
    })

CLOB_TYPES = frozenset({
    c.MIMER_CLOB, c.MIMER_CLOB_LOCATOR, c.MIMER_NATIVE_CLOB, c.MIMER_NATIVE_CLOB_LOCATOR,
    })

NCLOB_TYPES = frozenset({
    c.MIMER_NCLOB, c.MIMER_NCLOB_LOCATOR, c.MIMER_NATIVE_NCLOB, c.MIMER_NATIVE_NCLOB_LOCATOR,
    }) | CLOB_TYPES

BINARY_TYPES = frozenset({c.MIMER_BINARY, c.MIMER_BINARY_VARYING})

NULLABLE_NATIVE_TYPES = frozenset({
    c.MIMER_NATIVE_SMALLINT_NULLABLE,
    c.MIMER_NATIVE_INTEGER_NULLABLE,
    c.MIMER_NATIVE_BIGINT_NULLABLE,
    c.MIMER_NATIVE_REAL_NULLABLE,
    c.MIMER_NATIVE_DOUBLE_NULLABLE,
    })

TYPE_NAMES: dict[int, str] = {
    c.MIMER_CHARACTER: 'CHARACTER',
    c.MIMER_CHARACTER_VARYING: 'CHARACTER VARYING',
    c.MIMER_NCHAR: 'NCHAR',
    c.MIMER_NCHAR_VARYING: 'NCHAR VARYING',
    c.MIMER_UTF8: 'NVARCHAR',
    c.MIMER_DECIMAL: 'DECIMAL',
    c.MIMER_NUMERIC: 'NUMERIC',
    c.MIMER_INTEGER: 'INTEGER',
    c.MIMER_UNSIGNED_INTEGER: 'INTEGER',
    c.MIMER_T_INTEGER: 'INTEGER',
    c.MIMER_T_UNSIGNED_INTEGER: 'INTEGER',
    c.MIMER_T_SMALLINT: 'SMALLINT',
    c.MIMER_T_UNSIGNED_SMALLINT: 'SMALLINT',
    c.MIMER_T_BIGINT: 'BIGINT',
    c.MIMER_T_UNSIGNED_BIGINT: 'BIGINT',
    c.MIMER_FLOAT: 'FLOAT',
    c.MIMER_T_FLOAT: 'FLOAT',
    c.MIMER_T_REAL: 'REAL',
    c.MIMER_T_DOUBLE: 'DOUBLE PRECISION',
    c.MIMER_BOOLEAN: 'BOOLEAN',
    c.MIMER_DATE: 'DATE',
    c.MIMER_TIME: 'TIME',
    c.MIMER_TIMESTAMP: 'TIMESTAMP',
    c.MIMER_BINARY: 'BINARY',
    c.MIMER_BINARY_VARYING: 'BINARY VARYING',
    c.MIMER_BLOB: 'BLOB',
    c.MIMER_CLOB: 'CLOB',
    c.MIMER_NCLOB: 'NCLOB',
    c.MIMER_BLOB_LOCATOR: 'BLOB',
    c.MIMER_CLOB_LOCATOR: 'CLOB',
    c.MIMER_NCLOB_LOCATOR: 'NCLOB',
    c.MIMER_NATIVE_SMALLINT: 'SMALLINT',
    c.MIMER_NATIVE_SMALLINT_NULLABLE: 'SMALLINT',
    c.MIMER_NATIVE_INTEGER: 'INTEGER',
    c.MIMER_NATIVE_INTEGER_NULLABLE: 'INTEGER',
    c.MIMER_NATIVE_BIGINT: 'BIGINT',
    c.MIMER_NATIVE_BIGINT_NULLABLE: 'BIGINT',
    c.MIMER_NATIVE_REAL: 'REAL',
    c.MIMER_NATIVE_REAL_NULLABLE: 'REAL',
    c.MIMER_NATIVE_DOUBLE: 'DOUBLE PRECISION',
    c.MIMER_NATIVE_DOUBLE_NULLABLE: 'DOUBLE PRECISION',
    c.MIMER_NATIVE_BLOB: 'BLOB',
    c.MIMER_NATIVE_BLOB_LOCATOR: 'BLOB',
    c.MIMER_NATIVE_CLOB: 'CLOB',
    c.MIMER_NATIVE_CLOB_LOCATOR: 'CLOB',
    c.MIMER_NATIVE_NCLOB: 'NCLOB',
    c.MIMER_NATIVE_NCLOB_LOCATOR: 'NCLOB',
    c.MIMER_UUID: 'UUID',
}


def is_int32(type_code: int) -> bool:
    return abs(type_code) in INT32_TYPES


def is_int64(type_code: int) -> bool:
    return abs(type_code) in INT64_TYPES


def is_double(type_code: int) -> bool:
    return abs(type_code) in DOUBLE_TYPES


def is_float(type_code: int) -> bool:
    return abs(type_code) in FLOAT_TYPES


def is_boolean(type_code: int) -> bool:
    return abs(type_code) == c.MIMER_BOOLEAN


def is_blob(type_code: int) -> bool:
    return abs(type_code) in BLOB_TYPES


def is_clob(type_code: int) -> bool:
    return abs(type_code) in CLOB_TYPES


def is_nclob(type_code: int) -> bool:
    """Character large objects, national or not."""
    return abs(type_code) in NCLOB_TYPES


def is_binary(type_code: int) -> bool:
    return abs(type_code) in BINARY_TYPES


def resolve_type_name(type_code: int) -> str:
    """Resolve a (possibly negative) type code to its SQL type name.
    """
    code = abs(type_code)
    if code in TYPE_NAMES:
        return TYPE_NAMES[code]
    if c.MIMER_INTERVAL_YEAR <= code <= c.MIMER_INTERVAL_MINUTE_TO_SECOND:
        return 'INTERVAL'
    return 'UNKNOWN'


def is_nullable(type_code: int) -> bool:
    """Nullability of a raw column type code.

    Generic types signal nullable with a negative code; native types use a
    dedicated NULLABLE code instead of the sign.
    """
    if type_code < 0:
        return True
    return type_code in NULLABLE_NATIVE_TYPES


def resolve_python_type(type_code: int) -> type:
    """Python type produced when a column of this type is fetched.

    Follows the same precedence as row extraction.
    """
    if is_int32(type_code) or is_int64(type_code):
        return int
    if is_double(type_code) or is_float(type_code):
        return float
    if is_boolean(type_code):
        return bool
    if is_blob(type_code) or is_binary(type_code):
        return bytes
    return str


class Column:
    """Metadata for one result column.

    Captured once when a statement is prepared or a cursor is opened and
    never mutated afterwards.
    """

    __slots__ = ('name', 'type_code', 'type_name', 'nullable', 'python_type')

    def __init__(self, name: str, type_code: int, type_name: str | None = None,
                 nullable: bool | None = None, python_type: type | None = None) -> None:
        self.name = name
        self.type_code = type_code
        self.type_name = type_name or resolve_type_name(type_code)
        self.nullable = is_nullable(type_code) if nullable is None else nullable
        self.python_type = python_type or resolve_python_type(type_code)

    @classmethod
    def from_statement(cls, api: Any, stmt: Any, index: int) -> Self:
        """Read name and type code of the 1-based column `index`.
        """
        _, name = api.column_name(stmt, index, c.COLUMN_NAME_BUFFER_SIZE)
        type_code = api.column_type(stmt, index)
        return cls(name, type_code)

    @classmethod
    def list_from_statement(cls, api: Any, stmt: Any, column_count: int) -> list[Self]:
        return [cls.from_statement(api, stmt, index) for index in range(1, column_count + 1)]

    def to_dict(self) -> dict[str, Any]:
        return {
            'name': self.name,
            'type_code': self.type_code,
            'type_name': self.type_name,
            'nullable': self.nullable,
            }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Column):
            return NotImplemented
        return self.name == other.name and self.type_code == other.type_code

    def __hash__(self) -> int:
        return hash((self.name, self.type_code))

    def __repr__(self) -> str:
        null = 'NULL' if self.nullable else 'NOT NULL'
        return f'Column({self.name!r}, {self.type_name} {null}, code={self.type_code})'

    @staticmethod
    def get_names(columns: list['Column']) -> list[str]:
        return [col.name for col in columns]

    @staticmethod
    def get_column_types_dict(columns: list['Column']) -> dict[str, dict[str, Any]]:
        """Map column names to type info, as stored on DataFrame.attrs.
        """
        return {
            col.name: {
                'python_type': col.python_type.__name__,
                'type_name': col.type_name,
                'type_code': col.type_code,
                'nullable': col.nullable,
                }
            for col in columns
            }
