"""
Forward-only cursors over Mimer SQL statements.

A ResultSet walks one open cursor row by row. It either owns its statement
handle (created by `Connection.execute_query`, registered with the
connection) or shares the handle of a `PreparedStatement` (created by
`PreparedStatement.query`), in which case closing it only closes the cursor.

State machine: open -> exhausted -> closed. Exhaustion never reverts and
closed is terminal; every read on a closed cursor returns the empty result.
"""
import logging
import time
import weakref
from collections.abc import Iterator
from functools import wraps
from typing import Any

from mimerdb.constants import MIMER_SUCCESS
from mimerdb.exceptions import EngineFailure, ExecuteFailure
from mimerdb.native import last_error_message, raise_for_status
from mimerdb.row import RowFactory
from mimerdb.types import Column

__all__ = [
    'ResultSet',
    'dumpsql',
    'dumpstmt',
]

logger = logging.getLogger(__name__)

_CREATE_KEY = object()


def _record_call(connection: Any, elapsed: float) -> None:
    if connection is not None:
        connection.addcall(elapsed)


def dumpsql(func):
    """Decorator for logging SQL text and timing of connection-level calls."""
    @wraps(func)
    def wrapper(self, sql: str, params: Any = None, *args: Any, **kwargs: Any):
        start = time.time()
        logger.debug(f'SQL:\n{sql}\nparams: {params}')
        try:
            return func(self, sql, params, *args, **kwargs)
        except Exception:
            logger.error(f'Error with query:\nSQL:\n{sql}\nparams: {params}')
            raise
        finally:
            elapsed = time.time() - start
            _record_call(self, elapsed)
            logger.debug(f'Query time: {elapsed:.4f}s')
    return wrapper


def dumpstmt(func):
    """Decorator for logging executions of an already prepared statement."""
    @wraps(func)
    def wrapper(self, params: Any = None, *args: Any, **kwargs: Any):
        start = time.time()
        logger.debug(f'Prepared SQL:\n{self.sql}\nparams: {params}')
        try:
            return func(self, params, *args, **kwargs)
        except Exception:
            logger.error(f'Error with prepared statement:\nSQL:\n{self.sql}\nparams: {params}')
            raise
        finally:
            elapsed = time.time() - start
            _record_call(self.connection, elapsed)
            logger.debug(f'Statement time: {elapsed:.4f}s')
    return wrapper


class ResultSet:
    """Incremental access to the rows of one open cursor.

    Rows are dicts keyed by column name. Column metadata is captured when
    the cursor is opened and does not change afterwards.

    Examples
        with cn.execute_query('select id, name from t') as rs:
            for row in rs:
                print(row['id'], row['name'])

    A failed fetch ends the result set exactly like end-of-data does; the
    failure is logged and kept on `fetch_error`.

    Instances are created by `Connection.execute_query` and
    `PreparedStatement.query`; direct construction raises TypeError.
    """

    def __init__(self, create_key: object, connection: Any, stmt: Any,
                 columns: list[Column], owns_statement: bool = True,
                 statement: Any = None) -> None:
        if create_key is not _CREATE_KEY:
            raise TypeError('ResultSet cannot be constructed directly; '
                            'use Connection.execute_query() or PreparedStatement.query()')
        self._connection = weakref.ref(connection)
        self.api = connection.api
        self.session = connection.session
        self._stmt = stmt
        self._columns = list(columns)
        self._owns_statement = owns_statement
        self._statement = statement
        self._row_factory = RowFactory(self.api, stmt, self._columns,
                                       session=self.session, lobs=connection.lobs,
                                       string_buffer_size=connection.options.string_buffer_size)
        self._exhausted = False
        self._closed = False
        self.arraysize = 1
        self.rowcount = 0
        self.fetch_error: EngineFailure | None = None

    @property
    def connection(self) -> Any:
        return self._connection()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def fields(self) -> list[Column]:
        """Column metadata, empty once the cursor is closed."""
        if self._closed:
            return []
        return list(self._columns)

    def fetchone(self) -> dict[str, Any] | None:
        """Fetch the next row, or None at end of data or once closed.
        """
        if self._closed or self._exhausted:
            return None

        rc = self.api.fetch(self._stmt)
        if rc == MIMER_SUCCESS:
            self.rowcount += 1
            return self._row_factory()

        self._exhausted = True
        if rc < 0:
            detail = last_error_message(self.api, self.session)
            self.fetch_error = EngineFailure(code=rc, operation='MimerFetch', detail=detail)
            logger.warning(f'Fetch ended the result set early: {self.fetch_error}')
        else:
            logger.debug(f'Result set exhausted after {self.rowcount} row(s)')
        return None

    def fetchmany(self, size: int | None = None) -> list[dict[str, Any]]:
        """Fetch up to `size` rows (default `arraysize`)."""
        if size is None:
            size = self.arraysize
        rows = []
        for _ in range(size):
            row = self.fetchone()
            if row is None:
                break
            rows.append(row)
        return rows

    def fetchall(self) -> list[dict[str, Any]]:
        """Fetch all remaining rows."""
        rows = []
        row = self.fetchone()
        while row is not None:
            rows.append(row)
            row = self.fetchone()
        return rows

    def __iter__(self) -> Iterator[dict[str, Any]]:
        """Yield remaining rows, closing the cursor when iteration stops.
        """
        try:
            row = self.fetchone()
            while row is not None:
                yield row
                row = self.fetchone()
        finally:
            self.close()

    def _release(self) -> None:
        self._closed = True
        stmt, self._stmt = self._stmt, None
        rc = self.api.close_cursor(stmt)
        if rc < 0:
            logger.debug(f'MimerCloseCursor returned {rc}')
        if self._owns_statement:
            rc = self.api.end_statement(stmt)
            if rc < 0:
                logger.debug(f'MimerEndStatement returned {rc}')
        if self._statement is not None:
            self._statement._cursor_released(self)
            self._statement = None

    def close(self) -> None:
        """Release the cursor (and its statement when owned). Idempotent.
        """
        if self._closed:
            return
        self._release()
        connection = self._connection()
        if self._owns_statement and connection is not None:
            connection._unregister(self)
        logger.debug(f'Closed result set after {self.rowcount} row(s)')

    def _invalidate(self) -> None:
        """Release handles on connection teardown without unregistering.
        """
        if self._closed:
            return
        self._release()

    def __enter__(self) -> 'ResultSet':
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def __del__(self) -> None:
        if not getattr(self, '_closed', True):
            self._invalidate()

    def __repr__(self) -> str:
        state = 'closed' if self._closed else 'exhausted' if self._exhausted else 'open'
        return f'<ResultSet {state} columns={len(self._columns)} rows={self.rowcount}>'


def open_result_set(connection: Any, stmt: Any, columns: list[Column], *,
                    owns_statement: bool, statement: Any = None) -> ResultSet:
    """Open the cursor on `stmt` and wrap it in a ResultSet.

    On failure the cursor is not opened and the statement handle is left to
    the caller.
    """
    rc = connection.api.open_cursor(stmt)
    raise_for_status(connection.api, connection.session, rc, 'MimerOpenCursor', ExecuteFailure)
    return ResultSet(_CREATE_KEY, connection, stmt, columns,
                     owns_statement=owns_statement, statement=statement)
