"""
Chunked transfer of large objects (BLOB, CLOB, NCLOB).

Values are written through a LOB handle obtained from the statement after
declaring the total size, then pushed in bounded chunks. Character data is
sent as UTF-8 and a chunk never ends inside a multi-byte sequence.
"""
import logging
from collections.abc import Iterator
from typing import Any

from mimerdb.constants import LOB_READ_CHUNK, LOB_WRITE_CHUNK
from mimerdb.exceptions import BindFailure
from mimerdb.native import last_error_message, raise_for_status

__all__ = [
    'LobStreamer',
    'iter_byte_chunks',
    'iter_text_chunks',
    'utf8_boundary',
]

logger = logging.getLogger(__name__)


def _is_continuation(byte: int) -> bool:
    return (byte & 0xC0) == 0x80


def utf8_boundary(data: bytes, end: int) -> int:
    """Return the largest code point boundary at or before `end`.
    """
    while 0 < end < len(data) and _is_continuation(data[end]):
        end -= 1
    return end


def iter_byte_chunks(data: bytes, chunk_size: int = LOB_WRITE_CHUNK) -> Iterator[bytes]:
    """Yield consecutive slices of at most `chunk_size` bytes."""
    for offset in range(0, len(data), chunk_size):
        yield data[offset:offset + chunk_size]


def iter_text_chunks(data: bytes, chunk_size: int = LOB_WRITE_CHUNK) -> Iterator[bytes]:
    """Yield UTF-8 chunks of at most `chunk_size` bytes without splitting a character.

    A chunk that would end inside a multi-byte sequence is shortened to the
    preceding boundary and the remainder starts the next chunk. When a single
    character is wider than `chunk_size` the whole character is emitted.
    """
    offset = 0
    total = len(data)
    while offset < total:
        end = min(offset + chunk_size, total)
        boundary = utf8_boundary(data, end)
        if boundary <= offset:
            boundary = end
            while boundary < total and _is_continuation(data[boundary]):
                boundary += 1
        yield data[offset:boundary]
        offset = boundary


class LobStreamer:
    """Reads and writes large objects for one statement handle at a time.
    """

    def __init__(self, api: Any, session: Any = None,
                 read_chunk: int = LOB_READ_CHUNK,
                 write_chunk: int = LOB_WRITE_CHUNK) -> None:
        self.api = api
        self.session = session
        self.read_chunk = read_chunk
        self.write_chunk = write_chunk

    def _bind_failed(self, index: int, rc: int, operation: str) -> BindFailure:
        detail = f'failed to stream parameter {index}: {last_error_message(self.api, self.session)}'
        return BindFailure(index, rc, operation=operation, detail=detail)

    def write_blob(self, stmt: Any, index: int, data: bytes) -> None:
        """Stream `data` into BLOB parameter `index`.
        """
        rc, lob = self.api.set_lob(stmt, index, len(data))
        if rc < 0:
            raise self._bind_failed(index, rc, 'MimerSetLob')
        if not data:
            return

        chunks = 0
        for chunk in iter_byte_chunks(data, self.write_chunk):
            rc = self.api.set_blob_data(lob, chunk)
            if rc < 0:
                raise self._bind_failed(index, rc, 'MimerSetBlobData')
            chunks += 1
        logger.debug(f'Wrote {len(data)} byte BLOB to parameter {index} in {chunks} chunk(s)')

    def write_nclob(self, stmt: Any, index: int, text: str) -> None:
        """Stream `text` into character LOB parameter `index`.

        The declared size is the number of characters; the data is UTF-8.
        """
        rc, lob = self.api.set_lob(stmt, index, len(text))
        if rc < 0:
            raise self._bind_failed(index, rc, 'MimerSetLob')
        if not text:
            return

        data = text.encode('utf-8')
        chunks = 0
        for chunk in iter_text_chunks(data, self.write_chunk):
            rc = self.api.set_nclob_data(lob, chunk)
            if rc < 0:
                raise self._bind_failed(index, rc, 'MimerSetNclobData8')
            chunks += 1
        logger.debug(f'Wrote {len(text)} character NCLOB to parameter {index} in {chunks} chunk(s)')

    def read_blob(self, stmt: Any, index: int) -> bytes:
        """Read BLOB column `index` of the current row.
        """
        rc, size, lob = self.api.get_lob(stmt, index)
        raise_for_status(self.api, self.session, rc, 'MimerGetLob')
        if size == 0:
            return b''

        buf = bytearray()
        remaining = size
        while remaining > 0:
            chunk = min(remaining, self.read_chunk)
            rc, data = self.api.get_blob_data(lob, chunk)
            raise_for_status(self.api, self.session, rc, 'MimerGetBlobData')
            buf += data[:chunk]
            remaining -= chunk
        return bytes(buf)

    def read_nclob(self, stmt: Any, index: int) -> str:
        """Read character LOB column `index` of the current row.

        Pieces are requested until the engine reports no more data. They are
        joined before decoding, so a piece boundary may fall anywhere.
        """
        rc, size, lob = self.api.get_lob(stmt, index)
        raise_for_status(self.api, self.session, rc, 'MimerGetLob')
        if size == 0:
            return ''

        parts = []
        while True:
            rc, data = self.api.get_nclob_data(lob, self.read_chunk + 1)
            raise_for_status(self.api, self.session, rc, 'MimerGetNclobData8')
            parts.append(data)
            if rc == 0:
                break
        return b''.join(parts).decode('utf-8')
