import pytest
from mimerdb import constants as c
from mimerdb.exceptions import BindFailure
from mimerdb.lob import LobStreamer, iter_byte_chunks, iter_text_chunks
from mimerdb.lob import utf8_boundary


def _prepared(engine, sql='insert into t values (?)', param_type=c.MIMER_BLOB, **kwargs):
    engine.script(sql, param_types=[param_type], **kwargs)
    _, stmt = engine.begin_statement(None, sql, c.MIMER_FORWARD_ONLY)
    return stmt


def test_utf8_boundary():
    """Boundary moves back to the first byte of a multi-byte character"""
    data = 'aé€'.encode()  # 1 + 2 + 3 bytes
    assert utf8_boundary(data, 1) == 1
    assert utf8_boundary(data, 2) == 1
    assert utf8_boundary(data, 3) == 3
    assert utf8_boundary(data, 4) == 3
    assert utf8_boundary(data, 5) == 3
    assert utf8_boundary(data, 6) == 6


def test_iter_byte_chunks():
    chunks = list(iter_byte_chunks(b'abcdefg', 3))
    assert chunks == [b'abc', b'def', b'g']
    assert list(iter_byte_chunks(b'', 3)) == []


def test_iter_text_chunks_never_splits_characters():
    """Every chunk decodes on its own and the chunks rebuild the input"""
    text = 'ab€€€ñ' * 50 + '😀x'
    data = text.encode('utf-8')
    chunks = list(iter_text_chunks(data, 7))
    assert b''.join(chunks) == data
    for chunk in chunks:
        assert len(chunk) <= 7
        chunk.decode('utf-8')


def test_iter_text_chunks_character_wider_than_chunk():
    """A character wider than the chunk size is emitted whole"""
    data = '😀😀'.encode()
    assert list(iter_text_chunks(data, 2)) == ['😀'.encode(), '😀'.encode()]


def test_iter_text_chunks_single_pass():
    chunks = iter_text_chunks(b'abc', 2)
    assert list(chunks) == [b'ab', b'c']
    assert list(chunks) == []


def test_write_blob_in_chunks(engine):
    stmt = _prepared(engine)
    streamer = LobStreamer(engine, write_chunk=4)
    streamer.write_blob(stmt, 1, b'0123456789')

    lob = engine.lob_writes[0]
    assert lob.size == 10
    assert lob.chunks == [b'0123', b'4567', b'89']


def test_write_empty_blob_skips_stream(engine):
    """A zero-length LOB declares its size and writes nothing"""
    stmt = _prepared(engine)
    LobStreamer(engine).write_blob(stmt, 1, b'')

    assert engine.lob_writes[0].size == 0
    assert 'set_blob_data' not in engine.call_names()


def test_write_nclob_declares_characters(engine):
    """Declared size counts characters while the data is UTF-8"""
    stmt = _prepared(engine, param_type=c.MIMER_NCLOB)
    text = 'ñ€' * 10
    LobStreamer(engine, write_chunk=5).write_nclob(stmt, 1, text)

    lob = engine.lob_writes[0]
    assert lob.size == 20
    assert b''.join(lob.chunks) == text.encode('utf-8')
    for chunk in lob.chunks:
        chunk.decode('utf-8')


def test_write_empty_nclob_skips_stream(engine):
    stmt = _prepared(engine, param_type=c.MIMER_NCLOB)
    LobStreamer(engine).write_nclob(stmt, 1, '')
    assert 'set_nclob_data' not in engine.call_names()


def test_write_lob_failure(engine):
    """A failing SetLob surfaces as BindFailure for that parameter"""
    stmt = _prepared(engine, bind_rc={1: -12345})
    with pytest.raises(BindFailure) as exc:
        LobStreamer(engine).write_blob(stmt, 1, b'data')
    assert exc.value.index == 1
    assert exc.value.code == -12345
    assert exc.value.operation == 'MimerSetLob'


def _fetched(engine, value, type_code):
    sql = 'select v from lobs'
    engine.script(sql, columns=[('v', type_code)], rows=[(value,)])
    _, stmt = engine.begin_statement(None, sql, c.MIMER_FORWARD_ONLY)
    engine.open_cursor(stmt)
    engine.fetch(stmt)
    return stmt


def test_read_blob_larger_than_chunk(engine):
    data = bytes(range(256)) * 5
    stmt = _fetched(engine, data, c.MIMER_BLOB)
    result = LobStreamer(engine, read_chunk=100).read_blob(stmt, 1)

    assert result == data
    sizes = [call[2] for call in engine.calls if call[0] == 'get_blob_data']
    assert sizes == [100] * 12 + [80]


def test_read_nclob_multibyte_across_chunks(engine):
    """Pieces may end mid-character; the joined text still decodes"""
    text = 'x' + '€' * 100 + 'ñ'
    stmt = _fetched(engine, text, c.MIMER_NCLOB)
    result = LobStreamer(engine, read_chunk=16).read_nclob(stmt, 1)

    assert result == text
    sizes = {call[2] for call in engine.calls if call[0] == 'get_nclob_data'}
    assert sizes == {17}


def test_read_empty_lobs(engine):
    """Zero-length LOBs do not enter the streaming loop"""
    stmt = _fetched(engine, b'', c.MIMER_BLOB)
    assert LobStreamer(engine).read_blob(stmt, 1) == b''
    stmt = _fetched(engine, '', c.MIMER_NCLOB)
    assert LobStreamer(engine).read_nclob(stmt, 1) == ''
    names = engine.call_names()
    assert 'get_blob_data' not in names
    assert 'get_nclob_data' not in names


if __name__ == '__main__':
    __import__('pytest').main([__file__])
