import pytest
from mimerdb.constants import LOB_READ_CHUNK, LOB_WRITE_CHUNK, LOB_WRITE_LIMIT
from mimerdb.constants import STRING_BUFFER_SIZE
from mimerdb.options import MimerOptions, iterdict_data_loader
from mimerdb.options import pandas_numpy_data_loader


def test_init_defaults():
    """Test default initialization"""
    options = MimerOptions(dsn='testdb', username='sysadm', password='secret')

    assert options.library is None
    assert options.appname is not None
    assert options.lob_read_chunk == LOB_READ_CHUNK == 64 * 1024
    assert options.lob_write_chunk == LOB_WRITE_CHUNK == 2 * 1024 * 1024
    assert options.string_buffer_size == STRING_BUFFER_SIZE == 256
    assert options.data_loader == iterdict_data_loader


def test_explicit_values_kept():
    options = MimerOptions(dsn='testdb', username='sysadm', password='secret',
                           library='/opt/mimer/lib/libmimerapi.so', appname='loader',
                           lob_read_chunk=1024, lob_write_chunk=4096, string_buffer_size=64,
                           data_loader=pandas_numpy_data_loader)

    assert options.library == '/opt/mimer/lib/libmimerapi.so'
    assert options.appname == 'loader'
    assert options.lob_read_chunk == 1024
    assert options.lob_write_chunk == 4096
    assert options.string_buffer_size == 64
    assert options.data_loader == pandas_numpy_data_loader


@pytest.mark.parametrize('kwargs', [
    {'lob_read_chunk': 0},
    {'lob_read_chunk': -1},
    {'lob_write_chunk': 0},
    {'lob_write_chunk': LOB_WRITE_LIMIT},
    {'string_buffer_size': 1},
])
def test_validation(kwargs):
    """Transfer sizes outside their limits are rejected"""
    with pytest.raises(ValueError):
        MimerOptions(dsn='testdb', username='sysadm', password='secret', **kwargs)


def test_largest_write_chunk_allowed():
    options = MimerOptions(lob_write_chunk=LOB_WRITE_LIMIT - 1)
    assert options.lob_write_chunk == LOB_WRITE_LIMIT - 1


def test_validate_credentials():
    MimerOptions(dsn='testdb', username='sysadm', password='secret').validate_credentials()

    with pytest.raises(ValueError, match='dsn, password'):
        MimerOptions(username='sysadm').validate_credentials()
    with pytest.raises(ValueError, match='username'):
        MimerOptions(dsn='testdb', username='', password='secret').validate_credentials()


if __name__ == '__main__':
    __import__('pytest').main([__file__])
