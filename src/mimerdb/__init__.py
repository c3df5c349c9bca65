"""
Mimer SQL client built on the Mimer SQL C API.

All query operations can be called either as:
- Module functions: db.select(cn, sql, *args)
- Connection methods: cn.select(sql, *args)

Lower level access goes through the connection directly:
- cn.execute(sql, params) runs one statement and returns fields/rows/rowcount
- cn.prepare(sql) returns a reusable PreparedStatement
- cn.execute_query(sql, params) returns a ResultSet for incremental fetch
"""
__version__ = '0.1.0'

from typing import Any

from mimerdb.binder import BindKind, TypeConverter
from mimerdb.connection import Connection, collect_params, connect
from mimerdb.cursor import ResultSet
from mimerdb.exceptions import BindFailure, ConnectFailure, DatabaseError
from mimerdb.exceptions import DbConnectionError, EngineFailure, ExecuteFailure
from mimerdb.exceptions import LibraryNotFound, NotConnected, OperationalError
from mimerdb.exceptions import ParameterCountMismatch, PrepareFailure
from mimerdb.exceptions import ProgrammingError, StatementClosed
from mimerdb.exceptions import UnsupportedStatement
from mimerdb.native import MimerAPI, find_library, get_api
from mimerdb.options import MimerOptions, iterdict_data_loader
from mimerdb.options import pandas_numpy_data_loader, pandas_pyarrow_data_loader
from mimerdb.statement import PreparedStatement
from mimerdb.transaction import Transaction
from mimerdb.transaction import Transaction as transaction
from mimerdb.types import Column


def execute(cn: Connection, sql: str, *args: Any) -> int:
    """Execute a SQL statement and return the affected row count.
    """
    return cn.execute(sql, collect_params(args)).rowcount


delete = execute
insert = execute
update = execute


def select(cn: Connection, sql: str, *args: Any, **kwargs: Any) -> Any:
    """Execute a SELECT and return rows shaped by the data loader.
    """
    return cn.select(sql, *args, **kwargs)


def select_column(cn: Connection, sql: str, *args: Any) -> list[Any]:
    """Execute a query and return a single column as a list.
    """
    return cn.select_column(sql, *args)


def select_row(cn: Connection, sql: str, *args: Any) -> Any:
    """Execute a query and return a single row.

    Raises AssertionError if the query returns zero or multiple rows.
    """
    return cn.select_row(sql, *args)


def select_row_or_none(cn: Connection, sql: str, *args: Any) -> Any | None:
    """Execute a query and return a single row or None if no rows found.
    """
    return cn.select_row_or_none(sql, *args)


def select_scalar(cn: Connection, sql: str, *args: Any) -> Any:
    """Execute a query and return a single scalar value.

    Raises AssertionError if the query returns zero or multiple rows.
    """
    return cn.select_scalar(sql, *args)


def select_scalar_or_none(cn: Connection, sql: str, *args: Any) -> Any | None:
    """Execute a query and return a single scalar value or None if no rows found.
    """
    return cn.select_scalar_or_none(sql, *args)


__all__ = [
    '__version__',
    # Connection
    'connect',
    'Connection',
    'MimerOptions',
    'PreparedStatement',
    'ResultSet',
    'Column',
    'Transaction',
    'transaction',
    # Query operations
    'execute',
    'delete',
    'insert',
    'update',
    'select',
    'select_column',
    'select_row',
    'select_row_or_none',
    'select_scalar',
    'select_scalar_or_none',
    # Data loaders
    'iterdict_data_loader',
    'pandas_numpy_data_loader',
    'pandas_pyarrow_data_loader',
    # Binding
    'BindKind',
    'TypeConverter',
    # Engine binding
    'MimerAPI',
    'find_library',
    'get_api',
    # Exceptions
    'DatabaseError',
    'LibraryNotFound',
    'NotConnected',
    'ConnectFailure',
    'PrepareFailure',
    'UnsupportedStatement',
    'ParameterCountMismatch',
    'BindFailure',
    'ExecuteFailure',
    'StatementClosed',
    'EngineFailure',
    'DbConnectionError',
    'ProgrammingError',
    'OperationalError',
]
