"""
Prepared statements: prepare once, bind and execute many times.
"""
import logging
import weakref
from collections.abc import Sequence
from typing import Any

from mimerdb.binder import bind_parameters
from mimerdb.cursor import ResultSet, dumpstmt, open_result_set
from mimerdb.exceptions import ExecuteFailure, StatementClosed
from mimerdb.native import raise_for_status
from mimerdb.types import Column

from libb import attrdict

__all__ = ['PreparedStatement']

logger = logging.getLogger(__name__)

_CREATE_KEY = object()


class PreparedStatement:
    """One prepared statement handle bound to a connection.

    The handle stays prepared across executions. Each execution that
    produces result columns opens a cursor on the shared handle and closes
    it again, so at most one cursor is active per statement.

    Examples
        with cn.prepare('insert into t (id, name) values (?, ?)') as stmt:
            for row in rows:
                stmt.execute([row.id, row.name])

    Created by `Connection.prepare`; direct construction raises TypeError.
    """

    def __init__(self, create_key: object, connection: Any, stmt: Any, sql: str,
                 column_count: int) -> None:
        if create_key is not _CREATE_KEY:
            raise TypeError('PreparedStatement cannot be constructed directly; '
                            'use Connection.prepare()')
        self._connection = weakref.ref(connection)
        self.api = connection.api
        self.session = connection.session
        self.lobs = connection.lobs
        self.sql = sql
        self._stmt = stmt
        self._column_count = column_count
        self._columns: list[Column] | None = None
        self._cursor: ResultSet | None = None
        self._closed = False

    @property
    def connection(self) -> Any:
        return self._connection()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def column_count(self) -> int:
        return self._column_count

    @property
    def columns(self) -> list[Column]:
        """Result column metadata, read from the handle on first use."""
        self._check_open()
        if self._columns is None:
            self._columns = Column.list_from_statement(self.api, self._stmt, self._column_count)
        return self._columns

    def _check_open(self) -> None:
        if self._closed:
            raise StatementClosed(operation='PreparedStatement')

    def _close_cursor(self) -> None:
        if self._cursor is not None:
            self._cursor.close()

    def _cursor_released(self, cursor: ResultSet) -> None:
        if self._cursor is cursor:
            self._cursor = None

    def _bind(self, params: Sequence[Any] | None) -> None:
        if params is not None:
            bind_parameters(self.api, self._stmt, params, self.lobs)

    def _open_cursor(self) -> ResultSet:
        self._cursor = open_result_set(self.connection, self._stmt, self.columns,
                                       owns_statement=False, statement=self)
        return self._cursor

    @dumpstmt
    def execute(self, params: Sequence[Any] | None = None) -> attrdict:
        """Bind `params` and run the statement.

        Returns `fields`, `rows` and `rowcount` for statements with result
        columns and only `rowcount` (rows affected) otherwise.
        """
        self._check_open()
        self._close_cursor()
        self._bind(params)

        if self._column_count > 0:
            cursor = self._open_cursor()
            try:
                fields = cursor.fields
                rows = cursor.fetchall()
            finally:
                cursor.close()
            return attrdict(fields=fields, rows=rows, rowcount=len(rows))

        rc = self.api.execute(self._stmt)
        raise_for_status(self.api, self.session, rc, 'MimerExecute', ExecuteFailure)
        logger.debug(f'Prepared statement affected {rc} row(s)')
        return attrdict(rowcount=rc)

    def query(self, params: Sequence[Any] | None = None) -> ResultSet:
        """Bind `params` and open a cursor for incremental fetch.

        The returned ResultSet shares this statement's handle; closing it
        keeps the statement prepared.
        """
        self._check_open()
        self._close_cursor()
        if self._column_count <= 0:
            raise ExecuteFailure(operation='MimerOpenCursor',
                                 detail='statement does not return a result set')
        self._bind(params)
        return self._open_cursor()

    def _release(self) -> None:
        self._close_cursor()
        self._closed = True
        stmt, self._stmt = self._stmt, None
        rc = self.api.end_statement(stmt)
        if rc < 0:
            logger.debug(f'MimerEndStatement returned {rc}')

    def close(self) -> None:
        """Release the statement handle and unregister it. Idempotent.
        """
        if self._closed:
            return
        self._release()
        connection = self._connection()
        if connection is not None:
            connection._unregister(self)
        logger.debug('Closed prepared statement')

    def _invalidate(self) -> None:
        """Release the handle on connection teardown without unregistering.
        """
        if self._closed:
            return
        self._release()

    def __enter__(self) -> 'PreparedStatement':
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def __del__(self) -> None:
        if not getattr(self, '_closed', True):
            self._invalidate()

    def __repr__(self) -> str:
        state = 'closed' if self._closed else 'open'
        return f'<PreparedStatement {state} {self.sql!r}>'


def create_prepared_statement(connection: Any, stmt: Any, sql: str,
                              column_count: int) -> PreparedStatement:
    return PreparedStatement(_CREATE_KEY, connection, stmt, sql, column_count)
