"""
Status codes, modes and type codes of the Mimer SQL C API.
"""

MIMER_SUCCESS = 0
MIMER_NO_DATA = 100
MIMER_FORWARD_ONLY = 0
MIMER_COMMIT = 0
MIMER_ROLLBACK = 1
MIMER_TRANS_READWRITE = 0
MIMER_STATEMENT_CANNOT_BE_PREPARED = -24005

# Type codes (as returned by MimerColumnType/MimerParameterType, sign stripped)
MIMER_CHARACTER = 1
MIMER_DECIMAL = 2
MIMER_INTEGER = 3
MIMER_FLOAT = 4
MIMER_LIKE_PATTERN = 5
MIMER_T_INTEGER = 6
MIMER_T_SMALLINT = 7
MIMER_T_FLOAT = 8
MIMER_T_REAL = 9
MIMER_T_DOUBLE = 10
MIMER_CHARACTER_VARYING = 11
MIMER_DATE = 12
MIMER_TIME = 13
MIMER_TIMESTAMP = 14
MIMER_INTERVAL_YEAR = 15
MIMER_INTERVAL_MINUTE_TO_SECOND = 27
MIMER_UNSIGNED_INTEGER = 28
MIMER_T_UNSIGNED_INTEGER = 29
MIMER_T_UNSIGNED_SMALLINT = 30
MIMER_NUMERIC = 31
MIMER_T_BIGINT = 32
MIMER_T_UNSIGNED_BIGINT = 33
MIMER_BINARY = 34
MIMER_BINARY_VARYING = 35
MIMER_BLOB = 37
MIMER_CLOB = 38
MIMER_NCHAR = 39
MIMER_NCHAR_VARYING = 40
MIMER_NCLOB = 41
MIMER_BOOLEAN = 42
MIMER_BLOB_LOCATOR = 43
MIMER_CLOB_LOCATOR = 44
MIMER_NCLOB_LOCATOR = 45
MIMER_NATIVE_SMALLINT = 47
MIMER_NATIVE_SMALLINT_NULLABLE = 48
MIMER_NATIVE_INTEGER = 49
MIMER_NATIVE_INTEGER_NULLABLE = 50
MIMER_NATIVE_BIGINT = 51
MIMER_NATIVE_BIGINT_NULLABLE = 52
MIMER_NATIVE_REAL = 53
MIMER_NATIVE_REAL_NULLABLE = 54
MIMER_NATIVE_DOUBLE = 55
MIMER_NATIVE_DOUBLE_NULLABLE = 56
MIMER_NATIVE_BLOB = 57
MIMER_NATIVE_CLOB = 58
MIMER_NATIVE_NCLOB = 59
MIMER_NATIVE_BLOB_LOCATOR = 60
MIMER_NATIVE_CLOB_LOCATOR = 61
MIMER_NATIVE_NCLOB_LOCATOR = 62
MIMER_UTF8 = 63
MIMER_UUID = 8104

# LOB transfer sizes
LOB_READ_CHUNK = 64 * 1024
LOB_WRITE_CHUNK = 2 * 1024 * 1024
LOB_WRITE_LIMIT = 10 * 1024 * 1024

STRING_BUFFER_SIZE = 256
COLUMN_NAME_BUFFER_SIZE = 256
ERROR_BUFFER_SIZE = 1024

INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1
INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1
