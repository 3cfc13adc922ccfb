"""
Bulk loading of Arrow batches into PostgreSQL with COPY FROM STDIN.

Batches are encoded in the TEXT or BINARY COPY format and streamed over a
psycopg connection (or a SQLAlchemy connection wrapping one):

- copy_records(cn, table, data) loads a whole RecordBatch, Table, DataFrame,
  or iterable of those in one transfer
- copy_session(cn, table) yields a CopyDriver for pushing batches manually
"""
__version__ = '0.1.0'

import itertools
from collections.abc import Sequence
from typing import Any

from bulkcopy.batch import to_record_batches
from bulkcopy.driver import CopyDriver, copy_session
from bulkcopy.encoder import ColumnKind, encode_as_text
from bulkcopy.exceptions import ConfigurationError, ContractViolation
from bulkcopy.exceptions import DatabaseError, DbConnectionError, ProtocolError
from bulkcopy.exceptions import TransportError, TypeConversionError
from bulkcopy.options import CopyFormat, CopyOptions
from bulkcopy.quoting import needs_quoting, quote_and_escape
from bulkcopy.state import CopyState, CopyStatus


def copy_records(cn: Any, table: str, data: Any, columns: Sequence[str] | None = None,
                 schema: str | None = None, format: CopyFormat | str = CopyFormat.AUTO,
                 null_byte_replacement: str | None = None,
                 batch_rows: int = 100_000) -> int:
    """Copy every row of data into table and return the number of rows copied.
    """
    options = CopyOptions(format=format, null_byte_replacement=null_byte_replacement,
                          schema=schema, columns=columns, batch_rows=batch_rows)
    batches = to_record_batches(data, options.batch_rows)
    first = next(batches, None)
    batch_schema = first.schema if first is not None else None
    with copy_session(cn, table, options=options, batch_schema=batch_schema) as copy:
        for batch in itertools.chain([first] if first is not None else [], batches):
            copy.push_batch(batch)
    return copy.rows_copied


__all__ = [
    'copy_records',
    'copy_session',
    'CopyDriver',
    'CopyFormat',
    'CopyOptions',
    'CopyState',
    'CopyStatus',
    'ColumnKind',
    'encode_as_text',
    'needs_quoting',
    'quote_and_escape',
    'DatabaseError',
    'ConfigurationError',
    'ProtocolError',
    'TransportError',
    'TypeConversionError',
    'ContractViolation',
    'DbConnectionError',
]
