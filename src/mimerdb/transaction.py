"""
Transaction handling for Mimer SQL connections.
"""
import logging
import threading
from typing import Any

from mimerdb.connection import collect_params

from libb import attrdict

logger = logging.getLogger(__name__)


_local = threading.local()


class Transaction:
    """Context manager for running multiple commands in a transaction.

    Thread-local storage tracks which connections have an active
    transaction; nested transactions on one connection in the same thread
    are not supported.

    Examples
        with Transaction(cn) as tx:
            tx.execute('delete from ...', args)
            tx.execute('update from ...', args)
    """

    def __init__(self, cn: Any) -> None:
        self.cn = cn
        self.connection = cn

        if not hasattr(_local, 'active_transactions'):
            _local.active_transactions = {}

        if id(cn) in _local.active_transactions:
            raise RuntimeError('Nested transactions are not supported')

    def __enter__(self):
        self.connection.begin_transaction()
        _local.active_transactions[id(self.connection)] = True
        logger.debug(f'Started transaction for connection {id(self.connection)}')
        return self

    def __exit__(self, exc_type: type | None, value: Exception | None, traceback: Any | None) -> None:
        try:
            if exc_type is not None:
                self.connection.rollback()
                logger.warning('Rolling back the current transaction')
            else:
                self.connection.commit()
                logger.debug(f'Committed transaction for connection {id(self.connection)}')
        finally:
            _local.active_transactions.pop(id(self.connection), None)
            logger.debug(f'Transaction cleanup complete for connection {id(self.connection)}')

    def execute(self, sql: str, *args: Any) -> int:
        """Execute SQL within transaction context and return the row count"""
        return self.connection.execute(sql, collect_params(args)).rowcount

    def select(self, sql: str, *args: Any, **kwargs: Any) -> Any:
        """Execute SELECT query within transaction context"""
        return self.connection.select(sql, *args, **kwargs)

    def select_row(self, sql: str, *args: Any) -> attrdict:
        """Execute a query and return a single row
        """
        return self.connection.select_row(sql, *args)

    def select_scalar(self, sql: str, *args: Any) -> Any:
        """Execute a query and return a single scalar value
        """
        return self.connection.select_scalar(sql, *args)
