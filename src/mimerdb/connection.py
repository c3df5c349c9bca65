"""
Mimer SQL session handling.

This module provides:
1. The `connect()` function for opening a new session from MimerOptions
2. The `Connection` class that owns the session handle and every prepared
   statement and standalone result set derived from it
3. Query helpers on the connection (select, select_row, select_scalar, ...)

Closing a connection invalidates its result sets and statements before the
session handle is ended, so no derived handle outlives the session.

A connection and everything derived from it must be used from one thread
at a time; no locking is done around the session.
"""
import logging
import weakref
from collections.abc import Sequence
from dataclasses import fields
from typing import Any, Self

from mimerdb.binder import bind_parameters
from mimerdb.constants import MIMER_COMMIT, MIMER_FORWARD_ONLY, MIMER_ROLLBACK
from mimerdb.constants import MIMER_STATEMENT_CANNOT_BE_PREPARED, MIMER_TRANS_READWRITE
from mimerdb.cursor import ResultSet, dumpsql, open_result_set
from mimerdb.exceptions import ConnectFailure, EngineFailure, ExecuteFailure
from mimerdb.exceptions import NotConnected, PrepareFailure, UnsupportedStatement
from mimerdb.lob import LobStreamer
from mimerdb.native import get_api, last_error_message, raise_for_status
from mimerdb.options import MimerOptions, use_iterdict_data_loader
from mimerdb.statement import PreparedStatement, create_prepared_statement
from mimerdb.types import Column

from libb import attrdict, is_null, load_options

__all__ = [
    'Connection',
    'connect',
    'collect_params',
]

logger = logging.getLogger(__name__)


def collect_params(args: tuple[Any, ...]) -> list[Any] | None:
    """Accept both `select(sql, a, b)` and `select(sql, [a, b])`."""
    if len(args) == 1 and isinstance(args[0], (list, tuple)):
        return list(args[0])
    return list(args) or None


class Connection:
    """One Mimer SQL session and the statements and cursors derived from it.

    Tracks query execution counts and timing, and supports the context
    manager protocol for explicit resource management.

    Examples
        with connect(dsn='demo', username='sysadm', password='...') as cn:
            cn.execute('create table t (id integer, name varchar(20))')
            cn.execute('insert into t values (?, ?)', [1, 'one'])
            result = cn.execute('select id, name from t')
    """

    def __init__(self, options: MimerOptions, api: Any = None) -> None:
        self.options = options
        self._api = api
        self.session = None
        self.lobs: LobStreamer | None = None
        self._connected = False
        self._statements: weakref.WeakSet = weakref.WeakSet()
        self._cursors: weakref.WeakSet = weakref.WeakSet()
        self.calls = 0
        self.time = 0
        self.in_transaction = False

    @property
    def api(self) -> Any:
        """Engine binding, loaded on first use."""
        if self._api is None:
            self._api = get_api(self.options.library)
        return self._api

    @property
    def connected(self) -> bool:
        return self._connected

    def is_connected(self) -> bool:
        return self._connected

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def __del__(self) -> None:
        if getattr(self, '_connected', False):
            self.close()

    def __repr__(self) -> str:
        state = 'connected' if self._connected else 'closed'
        return f'<Connection {self.options.dsn!r} {state}>'

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    def _check_connected(self) -> None:
        if not self._connected:
            raise NotConnected()

    def _register(self, entity: PreparedStatement | ResultSet) -> None:
        if isinstance(entity, ResultSet):
            self._cursors.add(entity)
        else:
            self._statements.add(entity)

    def _unregister(self, entity: PreparedStatement | ResultSet) -> None:
        self._cursors.discard(entity)
        self._statements.discard(entity)

    @property
    def open_statements(self) -> int:
        return len(self._statements)

    @property
    def open_cursors(self) -> int:
        return len(self._cursors)

    # Session lifecycle

    def connect(self) -> bool:
        """Open the session. A connected instance keeps its current session.
        """
        if self._connected:
            logger.debug('Session already open, not starting another one')
            return True

        self.options.validate_credentials()
        rc, session = self.api.begin_session(self.options.dsn, self.options.username,
                                             self.options.password)
        if rc < 0:
            detail = last_error_message(self.api, session)
            raise ConnectFailure(code=rc, operation='MimerBeginSession8', detail=detail)

        self.session = session
        self.lobs = LobStreamer(self.api, session,
                                read_chunk=self.options.lob_read_chunk,
                                write_chunk=self.options.lob_write_chunk)
        self._connected = True
        logger.debug(f'Connected to {self.options.dsn} as {self.options.username} for {self.options.appname}')
        return True

    def close(self) -> bool:
        """Invalidate derived cursors and statements, then end the session.

        Never raises for a failing session release; the failure is logged.
        """
        if not self._connected:
            return True

        for cursor in list(self._cursors):
            cursor._invalidate()
        self._cursors.clear()

        for statement in list(self._statements):
            statement._invalidate()
        self._statements.clear()

        session, self.session = self.session, None
        self._connected = False
        self.in_transaction = False
        rc = self.api.end_session(session)
        if rc < 0:
            logger.warning(f'MimerEndSession failed (code: {rc}); session discarded')

        logger.debug(f'Connection closed: {self.calls} queries in {self.time:.2f}s (avg: {self.time/max(1,self.calls):.3f}s per query)')
        return True

    # Statements

    def _column_count(self, stmt: Any) -> int:
        count = self.api.column_count(stmt)
        raise_for_status(self.api, self.session, count, 'MimerColumnCount')
        return count

    def _begin_statement(self, sql: str) -> tuple[int, Any]:
        rc, stmt = self.api.begin_statement(self.session, sql, MIMER_FORWARD_ONLY)
        if rc < 0 and rc != MIMER_STATEMENT_CANNOT_BE_PREPARED:
            raise_for_status(self.api, self.session, rc, 'MimerBeginStatement8', PrepareFailure)
        return rc, stmt

    @dumpsql
    def execute(self, sql: str, params: Sequence[Any] | None = None) -> attrdict:
        """Execute `sql` once and release its statement.

        Statements that return rows produce `fields`, `rows` and `rowcount`;
        others produce only `rowcount`. Statements the engine cannot prepare
        (DDL) are executed directly and report a rowcount of 0.
        """
        self._check_connected()
        rc, stmt = self._begin_statement(sql)
        if rc == MIMER_STATEMENT_CANNOT_BE_PREPARED:
            rc = self.api.execute_statement(self.session, sql)
            raise_for_status(self.api, self.session, rc, 'MimerExecuteStatement8', ExecuteFailure)
            logger.debug('Executed unpreparable statement directly')
            return attrdict(rowcount=0)

        try:
            if params is not None and len(params):
                bind_parameters(self.api, stmt, params, self.lobs)

            column_count = self._column_count(stmt)
            if column_count == 0:
                rc = self.api.execute(stmt)
                raise_for_status(self.api, self.session, rc, 'MimerExecute', ExecuteFailure)
                return attrdict(rowcount=rc)

            columns = Column.list_from_statement(self.api, stmt, column_count)
            with open_result_set(self, stmt, columns, owns_statement=False) as cursor:
                rows = cursor.fetchall()
            return attrdict(fields=columns, rows=rows, rowcount=len(rows))
        finally:
            self.api.end_statement(stmt)

    def prepare(self, sql: str) -> PreparedStatement:
        """Prepare `sql` for repeated execution.
        """
        self._check_connected()
        rc, stmt = self._begin_statement(sql)
        if rc == MIMER_STATEMENT_CANNOT_BE_PREPARED:
            detail = last_error_message(self.api, self.session)
            raise PrepareFailure(code=rc, operation='MimerBeginStatement8', detail=detail)

        try:
            column_count = self._column_count(stmt)
        except EngineFailure:
            self.api.end_statement(stmt)
            raise

        statement = create_prepared_statement(self, stmt, sql, column_count)
        self._register(statement)
        logger.debug(f'Prepared statement with {column_count} result column(s)')
        return statement

    @dumpsql
    def execute_query(self, sql: str, params: Sequence[Any] | None = None) -> ResultSet:
        """Open a cursor over a SELECT for incremental fetch.

        The returned ResultSet owns the statement handle until it is closed.
        """
        self._check_connected()
        rc, stmt = self._begin_statement(sql)
        if rc == MIMER_STATEMENT_CANNOT_BE_PREPARED:
            raise UnsupportedStatement(code=rc, operation='MimerBeginStatement8',
                                       detail='only SELECT statements return a cursor (DDL cannot be prepared)')

        try:
            column_count = self._column_count(stmt)
            if column_count <= 0:
                raise UnsupportedStatement(operation='MimerColumnCount',
                                           detail='only SELECT statements return a cursor (no result columns)')
            if params is not None and len(params):
                bind_parameters(self.api, stmt, params, self.lobs)
            columns = Column.list_from_statement(self.api, stmt, column_count)
            cursor = open_result_set(self, stmt, columns, owns_statement=True)
        except Exception:
            self.api.end_statement(stmt)
            raise

        self._register(cursor)
        return cursor

    # Transactions

    def begin_transaction(self) -> bool:
        self._check_connected()
        rc = self.api.begin_transaction(self.session, MIMER_TRANS_READWRITE)
        raise_for_status(self.api, self.session, rc, 'MimerBeginTransaction')
        self.in_transaction = True
        return True

    def commit(self) -> bool:
        self._check_connected()
        self.in_transaction = False
        rc = self.api.end_transaction(self.session, MIMER_COMMIT)
        raise_for_status(self.api, self.session, rc, 'MimerEndTransaction (commit)')
        return True

    def rollback(self) -> bool:
        self._check_connected()
        self.in_transaction = False
        rc = self.api.end_transaction(self.session, MIMER_ROLLBACK)
        raise_for_status(self.api, self.session, rc, 'MimerEndTransaction (rollback)')
        return True

    # Query helpers

    def select(self, sql: str, *args: Any, **kwargs: Any) -> Any:
        """Execute a SELECT and pass its rows through the configured data loader.
        """
        result = self.execute(sql, collect_params(args))
        data_loader = self.options.data_loader
        return data_loader(result.get('rows', []), result.get('fields', []), **kwargs)

    @use_iterdict_data_loader
    def select_column(self, sql: str, *args: Any) -> list[Any]:
        """Execute a query and return the first column as a list.
        """
        data = self.select(sql, *args)
        return [next(iter(row.values())) for row in data]

    @use_iterdict_data_loader
    def select_row(self, sql: str, *args: Any) -> attrdict:
        """Execute a query and return a single row as an attribute dictionary.

        Raises AssertionError if the query returns zero or multiple rows.
        """
        data = self.select(sql, *args)
        assert len(data) == 1, f'Expected one row, got {len(data)}'
        return attrdict(data[0])

    @use_iterdict_data_loader
    def select_row_or_none(self, sql: str, *args: Any) -> attrdict | None:
        """Execute a query and return a single row or None if no rows found.
        """
        data = self.select(sql, *args)
        if len(data) == 1:
            return attrdict(data[0])
        return None

    @use_iterdict_data_loader
    def select_scalar(self, sql: str, *args: Any) -> Any:
        """Execute a query and return a single scalar value.

        Raises AssertionError if the query returns zero or multiple rows.
        """
        data = self.select(sql, *args)
        assert len(data) == 1, f'Expected one row, got {len(data)}'
        result = next(iter(data[0].values()))
        logger.debug(f'Scalar query returned value of type {type(result).__name__}')
        return result

    def select_scalar_or_none(self, sql: str, *args: Any) -> Any | None:
        """Execute a query and return a single scalar value or None if no rows found.
        """
        try:
            val = self.select_scalar(sql, *args)
            if not is_null(val):
                return val
            return None
        except AssertionError:
            return None


@load_options(cls=MimerOptions)
def connect(options: MimerOptions | dict[str, Any] | str,
            config: Any | None = None, **kw: Any) -> Connection:
    """Open a Mimer SQL session

    Args:
        options: Can be:
                - MimerOptions object
                - String path to configuration
                - Dictionary of options
                - Options specified as keyword arguments
        config: Configuration object (for loading from config files)
        **kw: Additional keyword arguments to override options

    Returns
        Connected Connection object
    """
    if isinstance(options, MimerOptions):
        for field in fields(options):
            kw.pop(field.name, None)
    else:
        options_func = load_options(cls=MimerOptions)(lambda o, c: o)
        options = options_func(options, config, **kw)

    options.validate_credentials()
    cn = Connection(options, api=get_api(options.library))
    cn.connect()
    return cn
