"""Row factory converting the current cursor row into a dictionary."""
import logging
from typing import Any

from mimerdb.constants import STRING_BUFFER_SIZE
from mimerdb.lob import LobStreamer
from mimerdb.native import raise_for_status
from mimerdb.types import Column, is_binary, is_blob, is_boolean, is_double
from mimerdb.types import is_float, is_int32, is_int64, is_nclob

logger = logging.getLogger(__name__)


class RowFactory:
    """Builds one dict per fetched row from cached column metadata.

    The column names and type codes are read once, when the factory is
    created for a cursor, and reused for every row. Each column value is
    extracted with the getter selected by its type code, in this order:
    int32, int64, double, float, boolean, BLOB, character LOB, binary, and
    finally text for everything else (dates, times, decimals, UUIDs, ...).
    """

    def __init__(self, api: Any, stmt: Any, columns: list[Column],
                 session: Any = None, lobs: LobStreamer | None = None,
                 string_buffer_size: int = STRING_BUFFER_SIZE) -> None:
        self.api = api
        self.stmt = stmt
        self.session = session
        self.columns = columns
        self.lobs = lobs or LobStreamer(api, session)
        self.string_buffer_size = string_buffer_size
        self._readers = [self._reader_for(col.type_code) for col in columns]

    def _reader_for(self, type_code: int):
        if is_int32(type_code):
            return self._read_int32
        if is_int64(type_code):
            return self._read_int64
        if is_double(type_code):
            return self._read_double
        if is_float(type_code):
            return self._read_float
        if is_boolean(type_code):
            return self._read_boolean
        if is_blob(type_code):
            return self.lobs.read_blob
        if is_nclob(type_code):
            return self.lobs.read_nclob
        if is_binary(type_code):
            return self._read_binary
        return self._read_string

    def _checked(self, result: tuple[int, Any], operation: str) -> Any:
        rc, value = result
        raise_for_status(self.api, self.session, rc, operation)
        return value

    def _read_int32(self, stmt: Any, index: int) -> int:
        return self._checked(self.api.get_int32(stmt, index), 'MimerGetInt32')

    def _read_int64(self, stmt: Any, index: int) -> int:
        return self._checked(self.api.get_int64(stmt, index), 'MimerGetInt64')

    def _read_double(self, stmt: Any, index: int) -> float:
        return self._checked(self.api.get_double(stmt, index), 'MimerGetDouble')

    def _read_float(self, stmt: Any, index: int) -> float:
        return self._checked(self.api.get_float(stmt, index), 'MimerGetFloat')

    def _read_boolean(self, stmt: Any, index: int) -> bool:
        rc = self.api.get_boolean(stmt, index)
        raise_for_status(self.api, self.session, rc, 'MimerGetBoolean')
        return rc > 0

    def _read_binary(self, stmt: Any, index: int) -> bytes:
        size, _ = self.api.get_binary(stmt, index, 0)
        raise_for_status(self.api, self.session, size, 'MimerGetBinary')
        if size == 0:
            return b''
        rc, data = self.api.get_binary(stmt, index, size)
        raise_for_status(self.api, self.session, rc, 'MimerGetBinary')
        return data[:size]

    def _read_string(self, stmt: Any, index: int) -> str:
        """Read text, retrying with an exact buffer when the first read truncates.
        """
        size, text = self.api.get_string(stmt, index, self.string_buffer_size)
        raise_for_status(self.api, self.session, size, 'MimerGetString8')
        if size < self.string_buffer_size:
            return text
        logger.debug(f'Column {index} value of {size} bytes exceeds buffer, re-reading')
        rc, text = self.api.get_string(stmt, index, size + 1)
        raise_for_status(self.api, self.session, rc, 'MimerGetString8')
        return text

    def __call__(self) -> dict[str, Any]:
        """Convert the row the cursor is currently positioned on.
        """
        row: dict[str, Any] = {}
        for index, (col, reader) in enumerate(zip(self.columns, self._readers), start=1):
            if self.api.is_null(self.stmt, index) > 0:
                row[col.name] = None
                continue
            row[col.name] = reader(self.stmt, index)
        return row
