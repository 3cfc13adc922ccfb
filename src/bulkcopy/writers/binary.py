"""
COPY ... (FORMAT BINARY) row writer.

Stream layout:

    header   11-byte signature, int32 flags (0), int32 extension length (0)
    row      int16 field count, then per field either int32 -1 (NULL)
             or int32 length followed by the type's binary payload
    footer   int16 -1

Payloads come from psycopg's binary dumpers for the PostgreSQL type each
Arrow column maps to.
"""
import struct
from typing import Any

import psycopg
import pyarrow as pa

from bulkcopy.adapters.type_mapping import dump_binary, get_binary_dumper
from bulkcopy.adapters.type_mapping import innermost_type
from bulkcopy.exceptions import ContractViolation, TypeConversionError
from bulkcopy.options import CopyFormat
from bulkcopy.writers.base import PreparedColumn, RowWriter, register_writer

__all__ = ['BinaryWriter', 'SIGNATURE', 'HEADER_SIZE']

SIGNATURE = b'PGCOPY\n\xff\r\n\x00'
HEADER_SIZE = len(SIGNATURE) + 8

_int16 = struct.Struct('!h')
_int32 = struct.Struct('!i')
_NULL_FIELD = _int32.pack(-1)
_FOOTER = _int16.pack(-1)


def _is_text(arrow_type: pa.DataType) -> bool:
    inner = innermost_type(arrow_type)
    return pa.types.is_string(inner) or pa.types.is_large_string(inner)


@register_writer(CopyFormat.BINARY)
class BinaryWriter(RowWriter):
    """Length-prefixed binary rows framed by the PGCOPY header and trailer.
    """

    def __init__(self, state, encoding='utf-8', context=None):
        super().__init__(state, encoding, context)
        self.field_count = 0
        self.fields_written = 0

    def prepare_column(self, column: pa.Array) -> PreparedColumn:
        prepared = super().prepare_column(column)
        prepared.encoder = get_binary_dumper(column.type, self.context)
        if _is_text(column.type):
            prepared.values = [self._replace_null_bytes(v) for v in prepared.values]
        return prepared

    def _replace_null_bytes(self, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, list):
            return [self._replace_null_bytes(v) for v in value]
        return self.state.replace_null_bytes(value)

    def write_header(self) -> None:
        self.buffer += SIGNATURE
        self.buffer += _int32.pack(0)
        self.buffer += _int32.pack(0)

    def write_footer(self) -> None:
        self.buffer += _FOOTER

    def begin_row(self, column_count: int) -> None:
        self.field_count = column_count
        self.fields_written = 0
        self.buffer += _int16.pack(column_count)

    def write_null(self) -> None:
        self.buffer += _NULL_FIELD

    def write_value(self, column: PreparedColumn, row: int) -> None:
        value = column.values[row]
        self.fields_written += 1
        if value is None:
            self.write_null()
            return
        try:
            data = dump_binary(column.encoder, value)
        except (struct.error, psycopg.Error, TypeError, ValueError, OverflowError) as err:
            raise TypeConversionError(
                f'Cannot encode {value!r} as binary {column.type}: {err}') from err
        self.buffer += _int32.pack(len(data))
        self.buffer += data

    def finish_row(self) -> None:
        if self.fields_written != self.field_count:
            raise ContractViolation(
                f'Row declared {self.field_count} fields but {self.fields_written} were written')
        self.rows_written += 1
