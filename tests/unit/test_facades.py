"""
Module-level query functions and connect().
"""
import mimerdb as db
import pytest
from mimerdb import constants as c


@pytest.fixture
def table(engine):
    engine.script('select id, name from t', columns=[('id', c.MIMER_T_INTEGER), ('name', -c.MIMER_UTF8)],
                  rows=[(1, 'one'), (2, 'two')])
    engine.script('select name from t where id = ?', columns=[('name', -c.MIMER_UTF8)],
                  param_types=[c.MIMER_T_INTEGER],
                  rows=lambda params: [('one',)] if params[0] == 1 else [])
    engine.script('update t set name = ? where id = ?',
                  param_types=[-c.MIMER_UTF8, c.MIMER_T_INTEGER], rowcount=1)


def test_execute_aliases(cn, table):
    assert db.execute(cn, 'update t set name = ? where id = ?', 'uno', 1) == 1
    assert db.update(cn, 'update t set name = ? where id = ?', ['uno', 1]) == 1
    assert db.insert is db.execute
    assert db.delete is db.execute


def test_select_functions(cn, table):
    assert db.select(cn, 'select id, name from t') == [{'id': 1, 'name': 'one'}, {'id': 2, 'name': 'two'}]
    assert db.select_column(cn, 'select id, name from t') == [1, 2]
    assert db.select_row(cn, 'select name from t where id = ?', 1).name == 'one'
    assert db.select_row_or_none(cn, 'select name from t where id = ?', 9) is None
    assert db.select_scalar(cn, 'select name from t where id = ?', 1) == 'one'
    assert db.select_scalar_or_none(cn, 'select name from t where id = ?', 9) is None


def test_connect_with_options(mocker, engine, options):
    get_api = mocker.patch('mimerdb.connection.get_api', return_value=engine)

    cn = db.connect(options)
    try:
        assert cn.is_connected() is True
        get_api.assert_called_once_with(None)
    finally:
        cn.close()


def test_connect_with_dict(mocker, engine):
    mocker.patch('mimerdb.connection.get_api', return_value=engine)

    cn = db.connect({'dsn': 'testdb', 'username': 'sysadm', 'password': 'secret'})
    try:
        assert cn.is_connected() is True
        assert engine.calls[0][1:] == ('testdb', 'sysadm', 'secret')
    finally:
        cn.close()


def test_connect_missing_credentials_skips_library(mocker):
    get_api = mocker.patch('mimerdb.connection.get_api')
    with pytest.raises(ValueError, match='password'):
        db.connect(db.MimerOptions(dsn='testdb', username='sysadm'))
    get_api.assert_not_called()


if __name__ == '__main__':
    __import__('pytest').main([__file__])
