from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any

import pandas as pd
import pyarrow as pa
from mimerdb.constants import LOB_READ_CHUNK, LOB_WRITE_CHUNK, LOB_WRITE_LIMIT
from mimerdb.constants import STRING_BUFFER_SIZE
from mimerdb.types import Column

from libb import ConfigOptions, scriptname

__all__ = [
    'MimerOptions',
    'arrow_schema',
    'pandas_numpy_data_loader',
    'pandas_pyarrow_data_loader',
    'iterdict_data_loader',
    'use_iterdict_data_loader',
]


def use_iterdict_data_loader(func):
    """Run a query helper with plain row dicts whatever loader is configured.
    """

    @wraps(func)
    def inner(cn, *args, **kwargs):
        configured = cn.options.data_loader
        cn.options.data_loader = iterdict_data_loader
        try:
            return func(cn, *args, **kwargs)
        finally:
            cn.options.data_loader = configured

    return inner


def iterdict_data_loader(data, columns, **kwargs) -> list[dict]:
    """Row dicts as produced by the cursor, in a list."""
    return list(data) if data else []


_ARROW_TYPES = {
    int: pa.int64(),
    float: pa.float64(),
    bool: pa.bool_(),
    bytes: pa.binary(),
    str: pa.string(),
}


def arrow_schema(columns) -> pa.Schema:
    """Arrow schema from result column metadata.

    BINARY and BLOB columns map to `binary`, so raw bytes are kept as they
    are; temporal, decimal and interval values arrive as engine text and map
    to `string`.
    """
    return pa.schema([
        pa.field(col.name, _ARROW_TYPES.get(col.python_type, pa.string()), nullable=col.nullable)
        for col in columns
        ])


def _with_column_types(df: pd.DataFrame, columns) -> pd.DataFrame:
    df.attrs['column_types'] = Column.get_column_types_dict(columns)
    return df


def pandas_numpy_data_loader(data, columns, **kwargs) -> pd.DataFrame:
    """DataFrame with NumPy-backed columns.

    Empty results keep their column names. Per-column Mimer type details
    are stored in `DataFrame.attrs['column_types']`.
    """
    names = Column.get_names(columns)
    df = pd.DataFrame.from_records(list(data or []), columns=names)
    return _with_column_types(df, columns)


def pandas_pyarrow_data_loader(data, columns, **kwargs) -> pd.DataFrame:
    """DataFrame with Arrow-backed columns typed from the result metadata.

    Nullable integer and boolean columns keep their type when they contain
    nulls, and empty results still carry typed columns.
    """
    schema = arrow_schema(columns)
    rows = list(data or [])
    table = pa.table({field.name: [row[field.name] for row in rows] for field in schema},
                     schema=schema)
    return _with_column_types(table.to_pandas(types_mapper=pd.ArrowDtype), columns)


@dataclass
class MimerOptions(ConfigOptions):
    """Options

    Connection:
    - dsn: database name as registered with the Mimer SQL client
    - username, password: credentials for the session
    - library: explicit path of the Mimer SQL shared library (default: searched)

    Transfer tuning:
    - lob_read_chunk: bytes requested per LOB read call (default: 64 KiB)
    - lob_write_chunk: bytes sent per LOB write call (default: 2 MiB, below 10 MiB)
    - string_buffer_size: first-attempt buffer for text columns (default: 256)
    """
    dsn: str = None
    username: str = None
    password: str = None
    library: str = None
    appname: str = None
    lob_read_chunk: int = LOB_READ_CHUNK
    lob_write_chunk: int = LOB_WRITE_CHUNK
    string_buffer_size: int = STRING_BUFFER_SIZE
    data_loader: Callable[..., Any] | None = None

    def __post_init__(self):
        self.appname = self.appname or scriptname() or 'python_console'
        if self.lob_read_chunk <= 0:
            raise ValueError('lob_read_chunk must be positive')
        if not 0 < self.lob_write_chunk < LOB_WRITE_LIMIT:
            raise ValueError(f'lob_write_chunk must be between 1 and {LOB_WRITE_LIMIT - 1} bytes')
        if self.string_buffer_size <= 1:
            raise ValueError('string_buffer_size must be greater than 1')
        if self.data_loader is None:
            self.data_loader = iterdict_data_loader

    def validate_credentials(self) -> None:
        """Raise ValueError unless dsn, username and password are all set.
        """
        missing = [name for name in ('dsn', 'username', 'password') if not getattr(self, name)]
        if missing:
            raise ValueError(f'Missing connection options: {", ".join(missing)}')
