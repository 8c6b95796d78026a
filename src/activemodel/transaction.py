"""
Transaction handling for model operations.
"""
import logging
import threading
from collections.abc import Callable
from typing import Any

from activemodel.exceptions import TransactionError

logger = logging.getLogger(__name__)


_local = threading.local()


def _active_transactions() -> dict[int, 'Transaction']:
    if not hasattr(_local, 'active_transactions'):
        _local.active_transactions = {}
    return _local.active_transactions


def in_transaction(cn: Any) -> bool:
    """True if the current thread has a Transaction open on cn."""
    return id(cn) in _active_transactions()


class Transaction:
    """Context manager for running multiple commands in a transaction.

    This implementation uses thread-local storage to track transaction state,
    making it safe to use in multi-threaded environments. Each thread can have
    its own transaction for the same connection, but nested transactions within
    the same thread raise TransactionError.

    The block commits when it exits normally and rolls back when it raises or
    when ``rollback_only()`` was called.

    Examples
        with Transaction(cn) as tx:
            cn.execute('delete from ...', *args)
            cn.execute('update ...', *args)
    """

    def __init__(self, cn: Any) -> None:
        self.cn = cn
        self._rollback_only = False

    def __enter__(self) -> 'Transaction':
        active = _active_transactions()
        if id(self.cn) in active:
            raise TransactionError('Nested transactions are not supported')
        self.cn.begin()
        active[id(self.cn)] = self
        logger.debug(f'Started transaction for connection {id(self.cn)}')

        return self

    def rollback_only(self) -> None:
        """Mark the transaction so that it rolls back on exit."""
        self._rollback_only = True

    def __exit__(self, exc_type: type | None, value: Exception | None, traceback: Any | None) -> None:
        try:
            if exc_type is not None or self._rollback_only:
                self.cn.rollback()
                logger.warning('Rolling back the current transaction')
            else:
                self.cn.commit()
                logger.debug(f'Committed transaction for connection {id(self.cn)}')
        finally:
            _active_transactions().pop(id(self.cn), None)
            logger.debug(f'Transaction cleanup complete for connection {id(self.cn)}')


def run_in_transaction(cn: Any, fn: Callable[[], Any]) -> Any:
    """Run fn inside a transaction on cn.

    Commits when fn returns anything but ``False``. Rolls back and returns
    ``False`` when fn returns ``False``. Rolls back and re-raises when fn raises.
    """
    with Transaction(cn) as tx:
        result = fn()
        if result is False:
            tx.rollback_only()
    return result
