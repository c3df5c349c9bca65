"""
Parameter binding for prepared statements.

Binding happens in two steps:
1. TypeConverter normalizes NumPy/Pandas values to plain Python values
2. classify() picks a BindKind for each value, taking the declared
   parameter type into account for LOB columns, and bind_parameters()
   issues the matching setter

Parameter indices are 1-based in the engine and 0-based in Python.
"""
import enum
import logging
import math
from collections.abc import Sequence
from typing import Any

import numpy as np
import pandas as pd
from mimerdb.constants import INT32_MAX, INT32_MIN, INT64_MAX, INT64_MIN
from mimerdb.exceptions import BindFailure, ParameterCountMismatch
from mimerdb.lob import LobStreamer
from mimerdb.types import is_blob, is_nclob

__all__ = [
    'BindKind',
    'TypeConverter',
    'classify',
    'bind_parameters',
]

logger = logging.getLogger(__name__)

NUMPY_FLOAT_TYPES = (np.floating,)
NUMPY_INT_TYPES = (np.integer, np.unsignedinteger)


class BindKind(enum.Enum):
    """Wire type chosen for one parameter value."""
    NULL = 'null'
    BOOLEAN = 'boolean'
    INT32 = 'int32'
    INT64 = 'int64'
    DOUBLE = 'double'
    STRING = 'string'
    NCLOB = 'nclob'
    BINARY = 'binary'
    BLOB = 'blob'


class TypeConverter:
    """Convert NumPy and Pandas values to plain Python values before binding.

    Missing-value markers (NaT, pd.NA) become None. NaN is a number and
    stays a float.
    """

    @staticmethod
    def convert_value(value: Any) -> Any:
        """Convert a single value to a bindable Python value."""
        if value is None:
            return None

        if isinstance(value, np.bool_):
            return bool(value)

        if isinstance(value, (*NUMPY_FLOAT_TYPES, *NUMPY_INT_TYPES)):
            return value.item()

        if isinstance(value, np.datetime64):
            if np.isnat(value):
                return None
            return pd.Timestamp(value).to_pydatetime()

        if isinstance(value, (bytearray, memoryview)):
            return bytes(value)

        if value is pd.NaT or value is pd.NA:
            return None

        if isinstance(value, pd.Timestamp):
            return value.to_pydatetime()

        return value

    @staticmethod
    def convert_params(params: Sequence[Any] | None) -> list[Any]:
        """Convert a positional parameter sequence."""
        if params is None:
            return []
        return [TypeConverter.convert_value(v) for v in params]


def _classify_number(value: int | float) -> BindKind:
    if isinstance(value, float) and (not math.isfinite(value) or not value.is_integer()):
        return BindKind.DOUBLE
    if INT32_MIN <= value <= INT32_MAX:
        return BindKind.INT32
    if INT64_MIN <= value <= INT64_MAX:
        return BindKind.INT64
    if isinstance(value, float):
        return BindKind.DOUBLE
    return BindKind.STRING


def classify(value: Any, param_type: int | None = None) -> BindKind:
    """Choose the wire type for `value` bound to a parameter of `param_type`.

    Precedence: null, boolean, number (int32, then int64, else double), text
    (NCLOB for character LOB parameters), binary (BLOB for binary LOB
    parameters). Anything else is bound as its string form.
    """
    if value is None:
        return BindKind.NULL
    if isinstance(value, bool):
        return BindKind.BOOLEAN
    if isinstance(value, (int, float)):
        return _classify_number(value)
    if isinstance(value, str):
        if param_type is not None and is_nclob(param_type):
            return BindKind.NCLOB
        return BindKind.STRING
    if isinstance(value, bytes):
        if param_type is not None and is_blob(param_type):
            return BindKind.BLOB
        return BindKind.BINARY
    return BindKind.STRING


def _needs_param_type(value: Any) -> bool:
    return isinstance(value, (str, bytes))


def _bind_one(api: Any, stmt: Any, index: int, kind: BindKind, value: Any,
              lobs: LobStreamer) -> int:
    if kind is BindKind.NULL:
        return api.set_null(stmt, index)
    if kind is BindKind.BOOLEAN:
        return api.set_boolean(stmt, index, value)
    if kind is BindKind.INT32:
        return api.set_int32(stmt, index, int(value))
    if kind is BindKind.INT64:
        return api.set_int64(stmt, index, int(value))
    if kind is BindKind.DOUBLE:
        return api.set_double(stmt, index, float(value))
    if kind is BindKind.NCLOB:
        lobs.write_nclob(stmt, index, value)
        return 0
    if kind is BindKind.BLOB:
        lobs.write_blob(stmt, index, value)
        return 0
    if kind is BindKind.BINARY:
        return api.set_binary(stmt, index, value)
    return api.set_string(stmt, index, value if isinstance(value, str) else str(value))


def bind_parameters(api: Any, stmt: Any, params: Sequence[Any],
                    lobs: LobStreamer | None = None) -> None:
    """Bind `params` positionally to the prepared statement handle `stmt`.

    The count is checked before any value is bound. Binding stops at the
    first failing setter; the statement is then in an unspecified but
    releasable state.
    """
    lobs = lobs or LobStreamer(api)
    values = TypeConverter.convert_params(params)

    expected = api.parameter_count(stmt)
    if len(values) != expected:
        raise ParameterCountMismatch(expected, len(values))

    for position, value in enumerate(values, start=1):
        param_type = api.parameter_type(stmt, position) if _needs_param_type(value) else None
        kind = classify(value, param_type)
        rc = _bind_one(api, stmt, position, kind, value, lobs)
        if rc < 0:
            raise BindFailure(position, rc)

    logger.debug(f'Bound {len(values)} parameter(s)')
