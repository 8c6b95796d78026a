"""
Unit tests for Transaction and run_in_transaction against a mock connection.
"""
import sqlite3

import pytest
from activemodel.exceptions import TransactionError
from activemodel.transaction import Transaction, in_transaction
from activemodel.transaction import run_in_transaction


def test_commit_on_success(mock_connection):
    cn = mock_connection()
    with Transaction(cn):
        assert in_transaction(cn)
    cn.begin.assert_called_once()
    cn.commit.assert_called_once()
    cn.rollback.assert_not_called()
    assert not in_transaction(cn)


def test_rollback_on_exception(mock_connection):
    cn = mock_connection()
    with pytest.raises(ValueError), Transaction(cn):
        raise ValueError('boom')
    cn.rollback.assert_called_once()
    cn.commit.assert_not_called()
    assert not in_transaction(cn)


def test_rollback_only(mock_connection):
    cn = mock_connection()
    with Transaction(cn) as tx:
        tx.rollback_only()
    cn.rollback.assert_called_once()
    cn.commit.assert_not_called()


def test_nested_raises(mock_connection):
    cn = mock_connection()
    with Transaction(cn), pytest.raises(TransactionError, match='Nested'), Transaction(cn):
        pass
    cn.begin.assert_called_once()
    cn.commit.assert_called_once()


def test_failed_begin_leaves_connection_free(mock_connection):
    cn = mock_connection()
    cn.begin.side_effect = [sqlite3.OperationalError('database is locked'), None]
    with pytest.raises(sqlite3.OperationalError), Transaction(cn):
        pass
    assert not in_transaction(cn)
    with Transaction(cn):
        assert in_transaction(cn)
    cn.commit.assert_called_once()
    cn.rollback.assert_not_called()


def test_separate_connections_do_not_nest(mock_connection):
    first, second = mock_connection(), mock_connection()
    with Transaction(first), Transaction(second):
        assert in_transaction(first)
        assert in_transaction(second)


class TestRunInTransaction:

    def test_returns_result_and_commits(self, mock_connection):
        cn = mock_connection()
        assert run_in_transaction(cn, lambda: 'done') == 'done'
        cn.commit.assert_called_once()

    def test_false_rolls_back(self, mock_connection):
        cn = mock_connection()
        assert run_in_transaction(cn, lambda: False) is False
        cn.rollback.assert_called_once()
        cn.commit.assert_not_called()

    def test_none_commits(self, mock_connection):
        cn = mock_connection()
        assert run_in_transaction(cn, lambda: None) is None
        cn.commit.assert_called_once()

    def test_exception_rolls_back_and_propagates(self, mock_connection):
        cn = mock_connection()

        def fail():
            raise KeyError('x')

        with pytest.raises(KeyError):
            run_in_transaction(cn, fail)
        cn.rollback.assert_called_once()
