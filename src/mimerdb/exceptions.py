"""
Mimer-specific exception classes.

Every error raised for a failed engine call carries the engine's numeric
status in `code` and the failing C API call in `operation`.
"""
from typing import Any


def format_message(operation: str | None, code: int | None,
                   detail: str | None = None) -> str:
    """Build the "<operation> failed: <detail> (code: <rc>)" message.
    """
    if operation is None:
        return detail or 'Unknown error'
    msg = f'{operation} failed'
    if detail:
        msg = f'{msg}: {detail}'
    if code is not None:
        msg = f'{msg} (code: {code})'
    return msg


class DatabaseError(Exception):
    """Base class for all mimerdb errors.
    """

    def __init__(self, message: str | None = None, code: int | None = None,
                 operation: str | None = None, detail: str | None = None) -> None:
        if message is None:
            message = format_message(operation, code, detail)
        super().__init__(message)
        self.code = code
        self.operation = operation
        self.detail = detail

    @property
    def message(self) -> str:
        return str(self)


class LibraryNotFound(DatabaseError):
    """The Mimer SQL shared library could not be located or loaded.
    """


class NotConnected(DatabaseError):
    """Operation requires an open session.
    """

    def __init__(self, message: str = 'Not connected to database', **kw: Any) -> None:
        super().__init__(message, **kw)


class ConnectFailure(DatabaseError):
    """The engine rejected the target or the credentials.
    """


class PrepareFailure(DatabaseError):
    """The engine rejected the SQL text.
    """


class UnsupportedStatement(DatabaseError):
    """A query-only entry point was given a non-SELECT or unpreparable statement.
    """


class ParameterCountMismatch(DatabaseError):
    """Number of supplied parameters differs from the statement's declared count.
    """

    def __init__(self, expected: int, actual: int) -> None:
        detail = f'statement expects {expected} but {actual} were provided'
        super().__init__(code=0, operation='BindParameters', detail=detail)
        self.expected = expected
        self.actual = actual


class BindFailure(DatabaseError):
    """A parameter bind call reported a negative status.
    """

    def __init__(self, index: int, code: int, operation: str = 'BindParameters',
                 detail: str | None = None) -> None:
        detail = detail or f'failed to bind parameter {index}'
        super().__init__(code=code, operation=operation, detail=detail)
        self.index = index


class ExecuteFailure(DatabaseError):
    """Executing a statement or opening its cursor failed.
    """


class StatementClosed(DatabaseError):
    """Operation on a statement whose handle has been released.
    """

    def __init__(self, message: str = 'Statement is closed', **kw: Any) -> None:
        super().__init__(message, **kw)


class EngineFailure(DatabaseError):
    """Generic negative status from any other engine call.
    """


DbConnectionError = (
    NotConnected,
    ConnectFailure,
    LibraryNotFound,
    )

ProgrammingError = (
    PrepareFailure,
    UnsupportedStatement,
    ParameterCountMismatch,
    BindFailure,
    StatementClosed,
    )

OperationalError = (
    ExecuteFailure,
    EngineFailure,
    )
