"""
ctypes binding for the Mimer SQL C API.

`MimerAPI` wraps one loaded copy of the shared library. Each method maps to a
single C entry point and returns plain Python values: the status code as an
int, with out-parameters appended to a tuple where the C call has them.

The rest of the package only relies on the method names and return shapes
defined here, so any object with the same methods can stand in for the
binding.
"""
import ctypes
import logging
import os
import pathlib
import re
import sys
import threading
from ctypes import POINTER, byref, c_char_p, c_double, c_float, c_int16
from ctypes import c_int32, c_int64, c_size_t, c_void_p
from typing import Any

from mimerdb.constants import ERROR_BUFFER_SIZE
from mimerdb.exceptions import DatabaseError, EngineFailure, LibraryNotFound

__all__ = [
    'MimerAPI',
    'find_library',
    'get_api',
    'raise_for_status',
    'last_error_message',
]

logger = logging.getLogger(__name__)

_api_registry: dict[str, 'MimerAPI'] = {}
_api_registry_lock = threading.RLock()

_handle_p = POINTER(c_void_p)

_PROTOTYPES: dict[str, tuple[Any, list[Any]]] = {
    'MimerBeginSession8': (c_int32, [c_char_p, c_char_p, c_char_p, _handle_p]),
    'MimerEndSession': (c_int32, [_handle_p]),
    'MimerBeginStatement8': (c_int32, [c_void_p, c_char_p, c_int32, _handle_p]),
    'MimerEndStatement': (c_int32, [_handle_p]),
    'MimerExecuteStatement8': (c_int32, [c_void_p, c_char_p]),
    'MimerExecute': (c_int32, [c_void_p]),
    'MimerOpenCursor': (c_int32, [c_void_p]),
    'MimerFetch': (c_int32, [c_void_p]),
    'MimerCloseCursor': (c_int32, [c_void_p]),
    'MimerColumnCount': (c_int32, [c_void_p]),
    'MimerColumnName8': (c_int32, [c_void_p, c_int16, c_char_p, c_size_t]),
    'MimerColumnType': (c_int32, [c_void_p, c_int16]),
    'MimerParameterCount': (c_int32, [c_void_p]),
    'MimerParameterType': (c_int32, [c_void_p, c_int16]),
    'MimerIsNull': (c_int32, [c_void_p, c_int16]),
    'MimerSetNull': (c_int32, [c_void_p, c_int16]),
    'MimerSetString8': (c_int32, [c_void_p, c_int16, c_char_p]),
    'MimerSetInt32': (c_int32, [c_void_p, c_int16, c_int32]),
    'MimerSetInt64': (c_int32, [c_void_p, c_int16, c_int64]),
    'MimerSetDouble': (c_int32, [c_void_p, c_int16, c_double]),
    'MimerSetBoolean': (c_int32, [c_void_p, c_int16, c_int32]),
    'MimerSetBinary': (c_int32, [c_void_p, c_int16, c_char_p, c_size_t]),
    'MimerGetString8': (c_int32, [c_void_p, c_int16, c_char_p, c_size_t]),
    'MimerGetInt32': (c_int32, [c_void_p, c_int16, POINTER(c_int32)]),
    'MimerGetInt64': (c_int32, [c_void_p, c_int16, POINTER(c_int64)]),
    'MimerGetDouble': (c_int32, [c_void_p, c_int16, POINTER(c_double)]),
    'MimerGetFloat': (c_int32, [c_void_p, c_int16, POINTER(c_float)]),
    'MimerGetBoolean': (c_int32, [c_void_p, c_int16]),
    'MimerGetBinary': (c_int32, [c_void_p, c_int16, c_char_p, c_size_t]),
    'MimerBeginTransaction': (c_int32, [c_void_p, c_int32]),
    'MimerEndTransaction': (c_int32, [c_void_p, c_int32]),
    'MimerSetLob': (c_int32, [c_void_p, c_int16, c_size_t, _handle_p]),
    'MimerSetBlobData': (c_int32, [_handle_p, c_char_p, c_size_t]),
    'MimerSetNclobData8': (c_int32, [_handle_p, c_char_p, c_size_t]),
    'MimerGetLob': (c_int32, [c_void_p, c_int16, POINTER(c_size_t), _handle_p]),
    'MimerGetBlobData': (c_int32, [_handle_p, c_char_p, c_size_t]),
    'MimerGetNclobData8': (c_int32, [_handle_p, c_char_p, c_size_t]),
    'MimerGetError8': (c_int32, [c_void_p, POINTER(c_int32), c_char_p, c_size_t]),
}


def _encode(value: str | None) -> bytes | None:
    return None if value is None else value.encode('utf-8')


def _version_key(version: str) -> tuple[int, ...]:
    return tuple(int(part) for part in version.split('.') if part.isdigit())


def _windows_dll(directory: str | os.PathLike | None) -> pathlib.Path | None:
    if not directory:
        return None
    dll = pathlib.Path(directory) / 'lib' / 'mimapi64.dll'
    return dll if dll.exists() else None


def _windows_registry_candidates() -> list[tuple[str, pathlib.Path]]:
    try:
        import winreg
    except ImportError:
        return []

    found = []
    base = r'SOFTWARE\Mimer\Mimer SQL'
    try:
        with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, base) as root:
            index = 0
            while True:
                try:
                    version = winreg.EnumKey(root, index)
                except OSError:
                    break
                index += 1
                try:
                    with winreg.OpenKey(root, version) as key:
                        path_name, _ = winreg.QueryValueEx(key, 'PathName')
                except OSError:
                    continue
                dll = _windows_dll(str(path_name).strip())
                if dll:
                    found.append((version, dll))
    except OSError as e:
        logger.debug(f'Mimer registry lookup failed: {e}')
    return found


def _find_windows_library() -> str:
    dll = _windows_dll(os.environ.get('MIMER_HOME'))
    if dll:
        return str(dll)

    candidates = _windows_registry_candidates()

    if not candidates:
        for env_name in ('ProgramFiles', 'ProgramFiles(x86)'):
            program_files = os.environ.get(env_name)
            if not program_files or not pathlib.Path(program_files).exists():
                continue
            try:
                entries = list(pathlib.Path(program_files).iterdir())
            except OSError as e:
                logger.debug(f'Cannot scan {program_files}: {e}')
                continue
            for entry in entries:
                if entry.is_dir() and entry.name.startswith('Mimer SQL Experience'):
                    dll = _windows_dll(entry)
                    if dll:
                        match = re.search(r'(\d+\.\d+)', entry.name)
                        candidates.append((match.group(1) if match else '0.0', dll))

    if candidates:
        candidates.sort(key=lambda item: _version_key(item[0]), reverse=True)
        return str(candidates[0][1])

    for default in (r'C:\Program Files\Mimer SQL Experience 12.0',
                    r'C:\Program Files\Mimer SQL Experience 11.0'):
        dll = _windows_dll(default)
        if dll:
            return str(dll)

    raise LibraryNotFound('Mimer SQL library not found. Please install Mimer SQL or set MIMER_HOME.')


def find_library(platform: str | None = None) -> str:
    """Return the path (or loader name) of the Mimer SQL shared library.

    Linux relies on the dynamic loader search path, macOS uses the installer
    location and Windows searches MIMER_HOME, the registry, Program Files and
    finally the default install directories.
    """
    platform = platform or sys.platform
    if platform.startswith('linux'):
        home = os.environ.get('MIMER_HOME')
        if home:
            candidate = pathlib.Path(home) / 'lib' / 'libmimerapi.so'
            if candidate.exists():
                return str(candidate)
        return 'libmimerapi.so'
    if platform == 'darwin':
        return '/usr/local/lib/libmimerapi.dylib'
    if platform == 'win32':
        return _find_windows_library()
    raise LibraryNotFound(f'Unsupported platform: {platform}')


class MimerAPI:
    """Typed access to one loaded copy of the Mimer SQL C library.
    """

    def __init__(self, lib: Any) -> None:
        self._lib = lib
        for name, (restype, argtypes) in _PROTOTYPES.items():
            func = getattr(lib, name)
            func.restype = restype
            func.argtypes = argtypes

    @classmethod
    def load(cls, path: str | None = None) -> 'MimerAPI':
        path = path or find_library()
        try:
            lib = ctypes.CDLL(path)
        except OSError as e:
            raise LibraryNotFound(f'Cannot load Mimer SQL library {path}: {e}') from e
        logger.debug(f'Loaded Mimer SQL library from {path}')
        return cls(lib)

    # Sessions

    def begin_session(self, dsn: str, user: str, password: str) -> tuple[int, c_void_p]:
        session = c_void_p()
        rc = self._lib.MimerBeginSession8(_encode(dsn), _encode(user), _encode(password),
                                          byref(session))
        return rc, session

    def end_session(self, session: c_void_p) -> int:
        return self._lib.MimerEndSession(byref(session))

    def begin_transaction(self, session: c_void_p, mode: int) -> int:
        return self._lib.MimerBeginTransaction(session, mode)

    def end_transaction(self, session: c_void_p, operation: int) -> int:
        return self._lib.MimerEndTransaction(session, operation)

    def get_error(self, session: c_void_p) -> tuple[int, int, str]:
        code = c_int32()
        buf = ctypes.create_string_buffer(ERROR_BUFFER_SIZE)
        rc = self._lib.MimerGetError8(session, byref(code), buf, ERROR_BUFFER_SIZE)
        return rc, code.value, buf.value.decode('utf-8', errors='replace')

    # Statements and cursors

    def begin_statement(self, session: c_void_p, sql: str, mode: int) -> tuple[int, c_void_p]:
        stmt = c_void_p()
        rc = self._lib.MimerBeginStatement8(session, _encode(sql), mode, byref(stmt))
        return rc, stmt

    def end_statement(self, stmt: c_void_p) -> int:
        return self._lib.MimerEndStatement(byref(stmt))

    def execute_statement(self, session: c_void_p, sql: str) -> int:
        return self._lib.MimerExecuteStatement8(session, _encode(sql))

    def execute(self, stmt: c_void_p) -> int:
        return self._lib.MimerExecute(stmt)

    def open_cursor(self, stmt: c_void_p) -> int:
        return self._lib.MimerOpenCursor(stmt)

    def fetch(self, stmt: c_void_p) -> int:
        return self._lib.MimerFetch(stmt)

    def close_cursor(self, stmt: c_void_p) -> int:
        return self._lib.MimerCloseCursor(stmt)

    # Metadata

    def column_count(self, stmt: c_void_p) -> int:
        return self._lib.MimerColumnCount(stmt)

    def column_name(self, stmt: c_void_p, index: int, size: int) -> tuple[int, str]:
        buf = ctypes.create_string_buffer(size)
        rc = self._lib.MimerColumnName8(stmt, index, buf, size)
        return rc, buf.value.decode('utf-8', errors='replace')

    def column_type(self, stmt: c_void_p, index: int) -> int:
        return self._lib.MimerColumnType(stmt, index)

    def parameter_count(self, stmt: c_void_p) -> int:
        return self._lib.MimerParameterCount(stmt)

    def parameter_type(self, stmt: c_void_p, index: int) -> int:
        return self._lib.MimerParameterType(stmt, index)

    # Setters

    def set_null(self, stmt: c_void_p, index: int) -> int:
        return self._lib.MimerSetNull(stmt, index)

    def set_boolean(self, stmt: c_void_p, index: int, value: bool) -> int:
        return self._lib.MimerSetBoolean(stmt, index, 1 if value else 0)

    def set_int32(self, stmt: c_void_p, index: int, value: int) -> int:
        return self._lib.MimerSetInt32(stmt, index, value)

    def set_int64(self, stmt: c_void_p, index: int, value: int) -> int:
        return self._lib.MimerSetInt64(stmt, index, value)

    def set_double(self, stmt: c_void_p, index: int, value: float) -> int:
        return self._lib.MimerSetDouble(stmt, index, value)

    def set_string(self, stmt: c_void_p, index: int, value: str) -> int:
        return self._lib.MimerSetString8(stmt, index, _encode(value))

    def set_binary(self, stmt: c_void_p, index: int, value: bytes) -> int:
        return self._lib.MimerSetBinary(stmt, index, value, len(value))

    # Getters

    def is_null(self, stmt: c_void_p, index: int) -> int:
        return self._lib.MimerIsNull(stmt, index)

    def get_int32(self, stmt: c_void_p, index: int) -> tuple[int, int]:
        value = c_int32()
        rc = self._lib.MimerGetInt32(stmt, index, byref(value))
        return rc, value.value

    def get_int64(self, stmt: c_void_p, index: int) -> tuple[int, int]:
        value = c_int64()
        rc = self._lib.MimerGetInt64(stmt, index, byref(value))
        return rc, value.value

    def get_double(self, stmt: c_void_p, index: int) -> tuple[int, float]:
        value = c_double()
        rc = self._lib.MimerGetDouble(stmt, index, byref(value))
        return rc, value.value

    def get_float(self, stmt: c_void_p, index: int) -> tuple[int, float]:
        value = c_float()
        rc = self._lib.MimerGetFloat(stmt, index, byref(value))
        return rc, value.value

    def get_boolean(self, stmt: c_void_p, index: int) -> int:
        return self._lib.MimerGetBoolean(stmt, index)

    def get_binary(self, stmt: c_void_p, index: int, size: int) -> tuple[int, bytes]:
        """Read a BINARY value; with size 0 only the value's length is returned.
        """
        if size <= 0:
            return self._lib.MimerGetBinary(stmt, index, None, 0), b''
        buf = ctypes.create_string_buffer(size)
        rc = self._lib.MimerGetBinary(stmt, index, buf, size)
        return rc, buf.raw[:min(rc, size)] if rc > 0 else b''

    def get_string(self, stmt: c_void_p, index: int, size: int) -> tuple[int, str]:
        """Read a value as UTF-8 text into a buffer of `size` bytes.

        The status is the full length of the value in bytes, so a status of
        `size` or more means the text was truncated.
        """
        buf = ctypes.create_string_buffer(size)
        rc = self._lib.MimerGetString8(stmt, index, buf, size)
        return rc, buf.value.decode('utf-8', errors='replace')

    # Large objects

    def set_lob(self, stmt: c_void_p, index: int, size: int) -> tuple[int, c_void_p]:
        lob = c_void_p()
        rc = self._lib.MimerSetLob(stmt, index, size, byref(lob))
        return rc, lob

    def set_blob_data(self, lob: c_void_p, data: bytes) -> int:
        return self._lib.MimerSetBlobData(byref(lob), data, len(data))

    def set_nclob_data(self, lob: c_void_p, data: bytes) -> int:
        return self._lib.MimerSetNclobData8(byref(lob), data, len(data))

    def get_lob(self, stmt: c_void_p, index: int) -> tuple[int, int, c_void_p]:
        size = c_size_t()
        lob = c_void_p()
        rc = self._lib.MimerGetLob(stmt, index, byref(size), byref(lob))
        return rc, size.value, lob

    def get_blob_data(self, lob: c_void_p, size: int) -> tuple[int, bytes]:
        buf = ctypes.create_string_buffer(size)
        rc = self._lib.MimerGetBlobData(byref(lob), buf, size)
        return rc, buf.raw[:size]

    def get_nclob_data(self, lob: c_void_p, size: int) -> tuple[int, bytes]:
        """Read the next UTF-8 piece of a character LOB.

        A positive status means more data follows; zero means this was the
        last piece. The piece ends at the buffer's NUL terminator.
        """
        buf = ctypes.create_string_buffer(size)
        rc = self._lib.MimerGetNclobData8(byref(lob), buf, size)
        return rc, buf.value


def get_api(path: str | None = None) -> MimerAPI:
    """Get or load the binding for the given library path.
    """
    key = path or find_library()
    with _api_registry_lock:
        if key in _api_registry:
            return _api_registry[key]
        api = MimerAPI.load(key)
        _api_registry[key] = api
        return api


def last_error_message(api: Any, session: Any) -> str:
    """Return the engine's text for the most recent error on a session.
    """
    if not session:
        return 'Unknown error'
    rc, _, message = api.get_error(session)
    if rc > 0 and message:
        return message
    return 'Unknown error'


def raise_for_status(api: Any, session: Any, rc: int, operation: str,
                     error: type[DatabaseError] = EngineFailure) -> None:
    """Raise `error` carrying the engine's message if `rc` is negative.
    """
    if rc < 0:
        detail = last_error_message(api, session)
        logger.debug(f'{operation} returned {rc}: {detail}')
        raise error(code=rc, operation=operation, detail=detail)
