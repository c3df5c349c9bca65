import gc
import logging

import numpy as np
import pytest
from mimerdb import constants as c
from mimerdb.connection import Connection, collect_params
from mimerdb.exceptions import BindFailure, ConnectFailure, EngineFailure, ExecuteFailure
from mimerdb.exceptions import NotConnected, StatementClosed, UnsupportedStatement

SELECT = 'select id, name from t where id = ?'


@pytest.fixture
def table(engine):
    engine.script(SELECT, columns=[('id', c.MIMER_T_INTEGER), ('name', -c.MIMER_UTF8)],
                  param_types=[c.MIMER_T_INTEGER],
                  rows=lambda params: [(params[0], 'answer')])
    engine.script('select id, name from t', columns=[('id', c.MIMER_T_INTEGER), ('name', -c.MIMER_UTF8)],
                  rows=[(1, 'one'), (2, 'two')])
    engine.script('insert into t values (?, ?)', param_types=[c.MIMER_T_INTEGER, -c.MIMER_UTF8],
                  rowcount=1)
    engine.script('update t set x = 1', rowcount=5)


def test_connect_and_close(engine, options):
    cn = Connection(options, api=engine)
    assert cn.is_connected() is False
    assert cn.connect() is True
    assert cn.is_connected() is True
    assert cn.connected is True
    assert engine.call_names() == ['begin_session']
    assert engine.calls[0][1:] == ('testdb', 'sysadm', 'secret')

    assert cn.close() is True
    assert cn.is_connected() is False
    assert cn.close() is True
    assert engine.call_names().count('end_session') == 1


def test_connect_logs_application_name(engine, caplog):
    from mimerdb.options import MimerOptions
    options = MimerOptions(dsn='testdb', username='sysadm', password='secret', appname='nightly-load')
    cn = Connection(options, api=engine)
    cn.connect()
    assert any('for nightly-load' in r.getMessage() for r in caplog.records)
    cn.close()


def test_connect_twice_keeps_session(engine, options):
    """A second connect() does not leak a new session handle"""
    cn = Connection(options, api=engine)
    cn.connect()
    cn.connect()
    assert len(engine.sessions) == 1
    cn.close()


def test_connect_failure(engine, options):
    engine.session_rc = -14006
    engine.error = (-14006, 'Login failure')
    cn = Connection(options, api=engine)
    with pytest.raises(ConnectFailure) as exc:
        cn.connect()
    assert exc.value.code == -14006
    assert exc.value.operation == 'MimerBeginSession8'
    assert cn.is_connected() is False
    # a failed session start leaves a NULL handle that must not be queried
    assert 'get_error' not in engine.call_names()


def test_connect_requires_credentials(engine):
    from mimerdb.options import MimerOptions
    cn = Connection(MimerOptions(dsn='testdb', username='sysadm'), api=engine)
    with pytest.raises(ValueError, match='password'):
        cn.connect()
    assert engine.calls == []


def test_not_connected_operations(engine, options):
    cn = Connection(options, api=engine)
    for call in (lambda: cn.execute('select 1'), lambda: cn.prepare('select 1'),
                 lambda: cn.execute_query('select 1'), cn.begin_transaction,
                 cn.commit, cn.rollback):
        with pytest.raises(NotConnected, match='Not connected to database'):
            call()


def test_ddl_falls_back_to_direct_execution(cn, engine):
    """Unpreparable statements run directly and report no rows"""
    result = cn.execute('create table t (id int)')

    assert result == {'rowcount': 0}
    assert 'fields' not in result
    assert 'rows' not in result
    assert engine.direct == ['create table t (id int)']


def test_direct_execution_failure(cn, engine):
    engine.direct_rc = -12200
    engine.error = (-12200, 'Table already exists')
    with pytest.raises(ExecuteFailure) as exc:
        cn.execute('create table t (id int)')
    assert exc.value.operation == 'MimerExecuteStatement8'
    assert 'Table already exists' in str(exc.value)


def test_select_scenario(cn, engine, table):
    """Parameterized select returns one field per column in declared order"""
    result = cn.execute(SELECT, [42])

    assert [f.name for f in result.fields] == ['id', 'name']
    assert result.fields[0].nullable is False
    assert result.fields[0].python_type is int
    assert result.rows == [{'id': 42, 'name': 'answer'}]
    assert result.rowcount == 1
    assert engine.open_statements == set()
    assert engine.open_cursors == set()


def test_dml_returns_rowcount(cn, engine, table):
    result = cn.execute('insert into t values (?, ?)', [1, 'one'])
    assert result == {'rowcount': 1}
    assert cn.execute('update t set x = 1').rowcount == 5
    assert engine.open_statements == set()


def test_numpy_array_params(cn, engine, table):
    """Parameters may arrive as a NumPy array"""
    assert cn.execute(SELECT, np.array([42])).rows == [{'id': 42, 'name': 'answer'}]
    with cn.execute_query(SELECT, np.array([7])) as rs:
        assert rs.fetchone() == {'id': 7, 'name': 'answer'}
    assert engine.open_statements == set()


def test_statement_released_on_bind_failure(cn, engine, table):
    engine.scripts['insert into t values (?, ?)'].bind_rc = {2: -24101}
    with pytest.raises(BindFailure):
        cn.execute('insert into t values (?, ?)', [1, 'one'])
    assert engine.open_statements == set()


def test_execute_query_rejects_dml_and_ddl(cn, engine, table):
    """Only statements with result columns produce a cursor"""
    with pytest.raises(UnsupportedStatement):
        cn.execute_query('update t set x = 1')
    with pytest.raises(UnsupportedStatement):
        cn.execute_query('drop table t')

    assert 'open_cursor' not in engine.call_names()
    assert engine.open_statements == set()
    assert cn.open_cursors == 0


def test_execute_query_releases_statement_when_cursor_fails(cn, engine, table):
    engine.scripts['select id, name from t'].open_rc = -24000
    with pytest.raises(ExecuteFailure):
        cn.execute_query('select id, name from t')
    assert engine.open_statements == set()


def test_close_invalidates_everything(cn, engine, table):
    """Closing the session closes every derived statement and cursor first"""
    statements = [cn.prepare(SELECT) for _ in range(3)]
    bound = statements[0].query([1])
    cursors = [cn.execute_query('select id, name from t') for _ in range(2)]
    assert cn.open_statements == 3
    assert cn.open_cursors == 2

    cn.close()

    assert all(stmt.closed for stmt in statements)
    assert all(rs.closed for rs in cursors)
    assert bound.closed is True
    assert engine.open_statements == set()
    assert engine.open_cursors == set()
    assert cn.open_statements == 0
    assert cn.open_cursors == 0

    names = engine.call_names()
    assert names[-1] == 'end_session'
    assert names.count('end_statement') == 5

    for stmt in statements:
        with pytest.raises(StatementClosed):
            stmt.execute([1])
    for rs in cursors:
        assert rs.fetchone() is None
        assert rs.fields == []


def test_close_after_entities_closed_does_not_double_free(cn, engine, table):
    stmt = cn.prepare(SELECT)
    rs = cn.execute_query('select id, name from t')
    stmt.close()
    rs.close()
    cn.close()

    ended = engine.ended_statements
    assert len(ended) == len(set(ended)) == 2


def test_close_reports_session_error_as_warning(cn, engine, caplog):
    engine.end_session_rc = -1
    with caplog.at_level(logging.WARNING, logger='mimerdb'):
        assert cn.close() is True
    assert cn.is_connected() is False
    assert any('MimerEndSession' in r.getMessage() for r in caplog.records)


def test_dropped_cursor_is_released(cn, engine, table):
    cn.execute_query('select id, name from t')
    gc.collect()
    assert engine.open_statements == set()
    assert cn.open_cursors == 0


def test_transactions(cn, engine):
    assert cn.begin_transaction() is True
    assert cn.in_transaction is True
    assert cn.commit() is True
    cn.begin_transaction()
    assert cn.rollback() is True
    assert cn.in_transaction is False

    ops = [call[2] for call in engine.calls if call[0] == 'end_transaction']
    assert ops == [c.MIMER_COMMIT, c.MIMER_ROLLBACK]
    modes = [call[2] for call in engine.calls if call[0] == 'begin_transaction']
    assert modes == [c.MIMER_TRANS_READWRITE, c.MIMER_TRANS_READWRITE]


def test_commit_failure_raises(cn, engine):
    engine.transaction_rc = -10001
    with pytest.raises(EngineFailure) as exc:
        cn.commit()
    assert exc.value.operation == 'MimerEndTransaction (commit)'


def test_call_statistics(cn, table):
    cn.execute('select id, name from t')
    cn.execute('update t set x = 1')
    assert cn.calls == 2
    assert cn.time >= 0


def test_select_helpers(cn, table):
    assert cn.select('select id, name from t') == [{'id': 1, 'name': 'one'}, {'id': 2, 'name': 'two'}]
    assert cn.select_column('select id, name from t') == [1, 2]

    row = cn.select_row(SELECT, 42)
    assert row.name == 'answer'
    assert cn.select_row_or_none(SELECT, 42).id == 42
    assert cn.select_scalar(SELECT, [42]) == 42
    assert cn.select_scalar_or_none(SELECT, 42) == 42

    with pytest.raises(AssertionError):
        cn.select_row('select id, name from t')
    assert cn.select_row_or_none('select id, name from t') is None
    assert cn.select_scalar_or_none('select id, name from t') is None


def test_collect_params():
    assert collect_params(()) is None
    assert collect_params((1, 2)) == [1, 2]
    assert collect_params(([1, 2],)) == [1, 2]
    assert collect_params(((1, 2),)) == [1, 2]


if __name__ == '__main__':
    __import__('pytest').main([__file__])
