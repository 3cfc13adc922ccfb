"""
Textual encoding of Arrow columns for COPY ... (FORMAT TEXT).

Every column is turned into a string array holding the literal PostgreSQL
expects for each value, with nulls preserved as nulls:

- list columns become array literals ``{e0,e1,...}``
- struct columns become row literals ``(v0,v1,...)``
- binary columns become bytea hex literals ``\\x0AFF``
- everything else goes through Arrow's own cast to string

Composite columns are encoded recursively: the child column is encoded once
for the whole batch and each parent row then slices into that result.
"""
import decimal
import enum
from collections.abc import Callable

import pyarrow as pa
import pyarrow.compute as pc

from bulkcopy.quoting import escape_quotes, quote_and_escape

__all__ = [
    'ColumnKind',
    'column_kind',
    'encode_as_text',
]

HEX_DIGITS = '0123456789ABCDEF'

# interval input units; nanoseconds are written as fractional microseconds
DURATION_UNITS = {
    's': 'seconds',
    'ms': 'milliseconds',
    'us': 'microseconds',
    }

NullByteReplacer = Callable[[str], str]


class ColumnKind(enum.Enum):
    LIST = 'list'
    STRUCT = 'struct'
    BLOB = 'blob'
    PRIMITIVE = 'primitive'


def column_kind(arrow_type: pa.DataType) -> ColumnKind:
    """Classify an Arrow type for text encoding.
    """
    if pa.types.is_dictionary(arrow_type):
        return column_kind(arrow_type.value_type)
    if (pa.types.is_list(arrow_type) or pa.types.is_large_list(arrow_type)
            or pa.types.is_fixed_size_list(arrow_type)):
        return ColumnKind.LIST
    if pa.types.is_struct(arrow_type):
        return ColumnKind.STRUCT
    if (pa.types.is_binary(arrow_type) or pa.types.is_large_binary(arrow_type)
            or pa.types.is_fixed_size_binary(arrow_type)):
        return ColumnKind.BLOB
    return ColumnKind.PRIMITIVE


def _list_windows(column: pa.Array, size: int) -> list[tuple[int, int]]:
    """Return the (offset, length) window of every row into column.values.
    """
    if pa.types.is_fixed_size_list(column.type):
        width = column.type.list_size
        return [((column.offset + r) * width, width) for r in range(size)]
    offsets = column.offsets.to_pylist()
    return [(offsets[r], offsets[r + 1] - offsets[r]) for r in range(size)]


def _quote_element(element: str) -> str:
    # an unquoted NULL in any case is read as a null element
    if element.lower() == 'null':
        return '"' + escape_quotes(element) + '"'
    return quote_and_escape(element)


def _encode_list(column: pa.Array, size: int,
                 replace_null_bytes: NullByteReplacer | None = None) -> pa.StringArray:
    child = column.values
    # nested arrays keep their own braces unquoted
    skip_quoting = column_kind(column.type.value_type) is ColumnKind.LIST
    elements = encode_as_text(child, replace_null_bytes=replace_null_bytes).to_pylist()
    windows = _list_windows(column, size)

    result = []
    for r, is_valid in enumerate(column.is_valid().to_pylist()[:size]):
        if not is_valid:
            result.append(None)
            continue
        offset, length = windows[r]
        parts = []
        for element in elements[offset:offset + length]:
            if element is None:
                parts.append('NULL')
            elif skip_quoting:
                parts.append(element)
            else:
                parts.append(_quote_element(element))
        result.append('{' + ','.join(parts) + '}')
    return pa.array(result, type=pa.string())


def _encode_struct(column: pa.Array, size: int,
                   replace_null_bytes: NullByteReplacer | None = None) -> pa.StringArray:
    fields = [
        encode_as_text(column.field(i), size, replace_null_bytes).to_pylist()
        for i in range(column.type.num_fields)
    ]

    result = []
    for r, is_valid in enumerate(column.is_valid().to_pylist()[:size]):
        if not is_valid:
            result.append(None)
            continue
        # row literals encode a null field by leaving its slot empty
        parts = ['' if values[r] is None else quote_and_escape(values[r])
                 for values in fields]
        result.append('(' + ','.join(parts) + ')')
    return pa.array(result, type=pa.string())


def _hex_literal(data: bytes) -> str:
    return '\\x' + ''.join(HEX_DIGITS[b >> 4] + HEX_DIGITS[b & 0x0F] for b in data)


def _encode_blob(column: pa.Array, size: int,
                 replace_null_bytes: NullByteReplacer | None = None) -> pa.StringArray:
    result = [None if value is None else _hex_literal(value)
              for value in column.slice(0, size).to_pylist()]
    return pa.array(result, type=pa.string())


def _encode_duration(column: pa.Array, size: int) -> pa.StringArray:
    """Render durations as interval literals in their own unit.
    """
    unit = column.type.unit
    ticks = pc.cast(column.slice(0, size), pa.int64()).to_pylist()
    if unit == 'ns':
        result = [None if t is None else f'{decimal.Decimal(t).scaleb(-3):f} microseconds'
                  for t in ticks]
    else:
        result = [None if t is None else f'{t} {DURATION_UNITS[unit]}' for t in ticks]
    return pa.array(result, type=pa.string())


def _encode_primitive(column: pa.Array, size: int,
                      replace_null_bytes: NullByteReplacer | None = None) -> pa.StringArray:
    if pa.types.is_duration(column.type):
        return _encode_duration(column, size)
    result = pc.cast(column.slice(0, size), pa.string())
    if (replace_null_bytes is not None
            and (pa.types.is_string(column.type) or pa.types.is_large_string(column.type))
            and pc.any(pc.match_substring(result, '\0')).as_py()):
        result = pa.array([None if v is None else replace_null_bytes(v)
                           for v in result.to_pylist()], type=pa.string())
    return result


_ENCODERS = {
    ColumnKind.LIST: _encode_list,
    ColumnKind.STRUCT: _encode_struct,
    ColumnKind.BLOB: _encode_blob,
    ColumnKind.PRIMITIVE: _encode_primitive,
}


def encode_as_text(column: pa.Array, size: int | None = None,
                   replace_null_bytes: NullByteReplacer | None = None) -> pa.StringArray:
    """Encode the first size values of column as COPY text literals.

    Args:
        column: Arrow array of any supported type
        size: Number of leading rows to encode, defaults to the whole column
        replace_null_bytes: Applied to every string value before it is
            quoted into an array or row literal, e.g. CopyState.replace_null_bytes

    Returns
        String array of the same length, null wherever column is null
    """
    if isinstance(column, pa.ChunkedArray):
        column = column.combine_chunks()
    if pa.types.is_dictionary(column.type):
        column = column.dictionary_decode()
    if size is None:
        size = len(column)
    return _ENCODERS[column_kind(column.type)](column, size, replace_null_bytes)
