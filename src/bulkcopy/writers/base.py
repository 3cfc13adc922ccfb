"""
Base row writer interface for COPY FROM STDIN payloads.

A row writer accumulates one batch of rows into a byte buffer in one COPY
format. Every writer shares the same life cycle:

    write_header()                    once per stream, first chunk only
    begin_row(column_count)
    write_value(column, row) / write_separator() between values
    finish_row()
    write_footer()                    once per stream, last chunk only

Writers register themselves for a CopyFormat with @register_writer so the
driver can select one strategy per session.
"""
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import pyarrow as pa

from bulkcopy.options import CopyFormat
from bulkcopy.state import CopyState

# Registry of format -> writer class
# Defined here to avoid circular imports (concrete writers import from base)
_WRITER_REGISTRY: dict[CopyFormat, type['RowWriter']] = {}


def register_writer(format: CopyFormat):
    """Decorator to register a row writer class for a copy format.

    Usage:
        @register_writer(CopyFormat.TEXT)
        class TextWriter(RowWriter):
            ...
    """
    def decorator(cls: type['RowWriter']) -> type['RowWriter']:
        _WRITER_REGISTRY[format] = cls
        return cls
    return decorator


@dataclass
class PreparedColumn:
    """Python values of one Arrow column plus the writer's per-column encoder.
    """
    type: pa.DataType
    values: list[Any]
    encoder: Any = None

    def is_null(self, row: int) -> bool:
        return self.values[row] is None


class RowWriter(ABC):
    """Base class for COPY row writers.
    """

    def __init__(self, state: CopyState, encoding: str = 'utf-8', context: Any = None) -> None:
        self.state = state
        self.encoding = encoding
        self.context = context
        self.buffer = bytearray()
        self.rows_written = 0

    def __len__(self) -> int:
        return len(self.buffer)

    def getvalue(self) -> bytes:
        return bytes(self.buffer)

    def prepare_column(self, column: pa.Array) -> PreparedColumn:
        """Materialize a column's values once before writing rows.
        """
        return PreparedColumn(type=column.type, values=column.to_pylist())

    def write_header(self) -> None:
        """Write the stream header. Formats without one write nothing.
        """

    def write_footer(self) -> None:
        """Write the stream trailer. Formats without one write nothing.
        """

    def begin_row(self, column_count: int) -> None:
        """Start a row of column_count fields.
        """

    def write_separator(self) -> None:
        """Write the delimiter between two fields.
        """

    @abstractmethod
    def write_value(self, column: PreparedColumn, row: int) -> None:
        """Write one field, NULL or not.
        """

    @abstractmethod
    def finish_row(self) -> None:
        """Terminate the current row.
        """

    def write_columns(self, columns: Sequence[pa.Array], num_rows: int) -> int:
        """Write num_rows rows, reading field c of each row from columns[c].

        Returns
            Number of rows written
        """
        prepared = [self.prepare_column(column) for column in columns]
        for r in range(num_rows):
            self.begin_row(len(prepared))
            for c, column in enumerate(prepared):
                if c > 0:
                    self.write_separator()
                self.write_value(column, r)
            self.finish_row()
        return num_rows
