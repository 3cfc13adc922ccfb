"""
Arrow type to PostgreSQL type resolution for binary COPY.

Binary COPY requires every field to be encoded exactly as the target column
type expects it. Each Arrow type maps to one PostgreSQL type, and the value
is encoded with psycopg's binary dumper for that type. Lists map to arrays
of their innermost element type; nested lists become multidimensional
arrays.
"""
import logging
from typing import Any

import pyarrow as pa
from psycopg import pq
from psycopg.abc import AdaptContext
from psycopg.adapt import Dumper
from psycopg.postgres import types
from psycopg.types.bool import BoolBinaryDumper
from psycopg.types.datetime import DateBinaryDumper, DatetimeBinaryDumper
from psycopg.types.datetime import DatetimeNoTzBinaryDumper, TimeBinaryDumper
from psycopg.types.datetime import TimedeltaBinaryDumper
from psycopg.types.numeric import DecimalBinaryDumper, Float4BinaryDumper
from psycopg.types.numeric import FloatBinaryDumper, Int2BinaryDumper
from psycopg.types.numeric import Int4BinaryDumper, Int8BinaryDumper
from psycopg.types.string import BytesBinaryDumper, StrBinaryDumper

from bulkcopy.exceptions import TypeConversionError

__all__ = [
    'postgres_type_name',
    'postgres_oid',
    'get_binary_dumper',
    'innermost_type',
]

logger = logging.getLogger(__name__)

oid = lambda x: types.get(x).oid
aoid = lambda x: types.get(x).array_oid

binary_dumpers: dict[str, type[Dumper]] = {
    'bool': BoolBinaryDumper,
    'int2': Int2BinaryDumper,
    'int4': Int4BinaryDumper,
    'int8': Int8BinaryDumper,
    'float4': Float4BinaryDumper,
    'float8': FloatBinaryDumper,
    'numeric': DecimalBinaryDumper,
    'text': StrBinaryDumper,
    'bytea': BytesBinaryDumper,
    'date': DateBinaryDumper,
    'timestamp': DatetimeNoTzBinaryDumper,
    'timestamptz': DatetimeBinaryDumper,
    'time': TimeBinaryDumper,
    'interval': TimedeltaBinaryDumper,
    }

_simple_types = [
    (pa.types.is_boolean, 'bool'),
    (pa.types.is_int8, 'int2'),
    (pa.types.is_int16, 'int2'),
    (pa.types.is_uint8, 'int2'),
    (pa.types.is_int32, 'int4'),
    (pa.types.is_uint16, 'int4'),
    (pa.types.is_int64, 'int8'),
    (pa.types.is_uint32, 'int8'),
    (pa.types.is_uint64, 'int8'),
    (pa.types.is_float16, 'float4'),
    (pa.types.is_float32, 'float4'),
    (pa.types.is_float64, 'float8'),
    (pa.types.is_decimal, 'numeric'),
    (pa.types.is_string, 'text'),
    (pa.types.is_large_string, 'text'),
    (pa.types.is_null, 'text'),
    (pa.types.is_binary, 'bytea'),
    (pa.types.is_large_binary, 'bytea'),
    (pa.types.is_fixed_size_binary, 'bytea'),
    (pa.types.is_date, 'date'),
    (pa.types.is_time, 'time'),
    (pa.types.is_duration, 'interval'),
]


def is_list_type(arrow_type: pa.DataType) -> bool:
    return (pa.types.is_list(arrow_type) or pa.types.is_large_list(arrow_type)
            or pa.types.is_fixed_size_list(arrow_type))


def innermost_type(arrow_type: pa.DataType) -> pa.DataType:
    """Strip list and dictionary wrappers down to the element type.
    """
    while True:
        if pa.types.is_dictionary(arrow_type):
            arrow_type = arrow_type.value_type
        elif is_list_type(arrow_type):
            arrow_type = arrow_type.value_type
        else:
            return arrow_type


def _element_type_name(arrow_type: pa.DataType) -> str:
    if pa.types.is_timestamp(arrow_type):
        return 'timestamptz' if arrow_type.tz is not None else 'timestamp'
    for predicate, name in _simple_types:
        if predicate(arrow_type):
            return name
    raise TypeConversionError(f'No PostgreSQL binary encoding for Arrow type {arrow_type}')


def postgres_type_name(arrow_type: pa.DataType) -> str:
    """Return the PostgreSQL type name for an Arrow type.

    Lists resolve to the array type name of their innermost element,
    e.g. ``list<int64>`` -> ``int8[]``.
    """
    name = _element_type_name(innermost_type(arrow_type))
    if is_list_type(arrow_type):
        return f'{name}[]'
    return name


def postgres_oid(arrow_type: pa.DataType) -> int:
    """Return the PostgreSQL type OID for an Arrow type.
    """
    name = _element_type_name(innermost_type(arrow_type))
    if is_list_type(arrow_type):
        return aoid(name)
    return oid(name)


def get_binary_dumper(arrow_type: pa.DataType, context: AdaptContext | None = None) -> Dumper:
    """Return a psycopg binary dumper instance for values of arrow_type.

    Array dumpers are looked up by OID in the context's adapters map so that
    their element dumper matches the element type exactly.
    """
    if pa.types.is_dictionary(arrow_type):
        return get_binary_dumper(arrow_type.value_type, context)
    if is_list_type(arrow_type):
        if context is None:
            raise TypeConversionError('An adaptation context is required to dump arrays')
        array_oid = postgres_oid(arrow_type)
        dumper_cls = context.adapters.get_dumper_by_oid(array_oid, pq.Format.BINARY)
        logger.debug(f'Using {dumper_cls.__name__} for {arrow_type}')
        return dumper_cls(list, context)
    name = _element_type_name(arrow_type)
    return binary_dumpers[name](object, context)


def dump_binary(dumper: Dumper, value: Any) -> bytes:
    """Dump one non-null value, normalizing the result to bytes.
    """
    data = dumper.dump(value)
    return bytes(data)
