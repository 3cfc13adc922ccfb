"""
COPY FROM STDIN protocol driver.

The driver owns the session state of one transfer and issues the protocol
sequence over a transport:

    begin_transfer()   COPY command, must be acknowledged with COPY_IN;
                       binary streams send their header first
    push_batch()       one chunk of rows per call, in call order
    end_transfer()     footer, end of copy, final status must be COMMAND_OK

Usage:
    with copy_session(conn, 'measurements', format='text') as copy:
        for batch in batches:
            copy.push_batch(batch)
"""
import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

import pyarrow as pa
from psycopg import pq
from psycopg.adapt import Transformer

from bulkcopy.batch import ScratchBatch, flatten_batch, to_record_batches
from bulkcopy.exceptions import ContractViolation, DatabaseError, ProtocolError
from bulkcopy.options import CopyFormat, CopyOptions, resolve_format
from bulkcopy.sql import build_copy_command
from bulkcopy.state import CopyState, CopyStatus
from bulkcopy.transport import Transport, resolve_transport
from bulkcopy.writers import RowWriter, get_writer_class

__all__ = ['CopyDriver', 'copy_session']

logger = logging.getLogger(__name__)


def _result_status(result: Any) -> Any:
    return getattr(result, 'status', None) if result is not None else None


def _result_message(result: Any, transport: Transport) -> str:
    """Server error message of a result, falling back to the connection's.
    """
    message = getattr(result, 'error_message', None) if result is not None else None
    if isinstance(message, bytes):
        message = message.decode(transport.encoding, 'replace')
    message = (message or '').strip()
    return message or transport.error_message()


class CopyDriver:
    """Stream Arrow batches into one table with COPY FROM STDIN.
    """

    def __init__(self, cn: Any, options: CopyOptions | None = None, **kwargs: Any) -> None:
        self.transport = resolve_transport(cn)
        self.options = options if options is not None else CopyOptions(**kwargs)
        self.state = CopyState()
        self.scratch = ScratchBatch()
        self.command: str | None = None
        self.table: str | None = None
        self.rows_copied = 0
        self.encoding = self.options.encoding or getattr(self.transport, 'encoding', None) or 'utf-8'
        self.context = getattr(self.transport, 'context', None) or Transformer()

    @property
    def format(self) -> CopyFormat:
        return self.state.format

    def _new_writer(self) -> RowWriter:
        return get_writer_class(self.state.format)(self.state, self.encoding, self.context)

    def _send(self, writer: RowWriter) -> None:
        data = writer.getvalue()
        if not data:
            return
        self.transport.send_chunk(data)
        self.state.record_chunk(len(data))

    def _drain_results(self) -> None:
        while self.transport.get_result() is not None:
            pass

    def begin_transfer(self, table: str, columns: Sequence[str] | None = None,
                       format: CopyFormat | str | None = None, schema: str | None = None,
                       batch_schema: pa.Schema | None = None) -> CopyState:
        """Issue the COPY command and prepare the session.

        Args:
            table: Target table name
            columns: Explicit target column list, defaults to options.columns
            format: Copy format, defaults to options.format; AUTO is resolved
                against batch_schema
            schema: Target schema name, defaults to options.schema
            batch_schema: Arrow schema of the batches to come

        Returns
            The active session state

        Raises
            ProtocolError: If the server does not enter COPY_IN mode
        """
        if self.state.status is not CopyStatus.UNINITIALIZED:
            raise ContractViolation(f'begin_transfer called on a transfer that is {self.state.status.value}')
        requested = format if format is not None else self.options.format
        resolved = resolve_format(requested, batch_schema)
        self.state.initialize(resolved, self.options.null_byte_replacement)

        columns = columns if columns is not None else self.options.columns
        schema = schema if schema is not None else self.options.schema
        self.table = table
        self.command = build_copy_command(table, columns, schema, resolved)

        try:
            result = self.transport.execute(self.command)
        except DatabaseError:
            self.state.fail()
            raise
        if _result_status(result) != pq.ExecStatus.COPY_IN:
            self.state.fail()
            message = _result_message(result, self.transport)
            logger.error(f'Failed to prepare COPY {self.command!r}: {message}')
            raise ProtocolError(message, self.command)
        self.state.activate()

        if resolved is CopyFormat.BINARY:
            # the binary header must precede any row data
            writer = self._new_writer()
            writer.write_header()
            try:
                self._send(writer)
            except DatabaseError:
                self.state.fail()
                raise
        logger.info(f'Started {resolved.value} COPY into {self.table}')
        return self.state

    def push_batch(self, batch: Any) -> int:
        """Encode and send one batch (or every batch of a table or frame).

        Returns
            Number of rows sent
        """
        self.state.require_active('push_batch')
        rows = 0
        try:
            for record_batch in to_record_batches(batch, self.options.batch_rows):
                rows += self._push_record_batch(record_batch)
        except Exception:
            self.state.fail()
            raise
        return rows

    def _push_record_batch(self, batch: pa.RecordBatch) -> int:
        batch = flatten_batch(batch)
        writer = self._new_writer()
        if self.state.format is CopyFormat.TEXT:
            scratch = self.scratch.encode(batch, self.state.replace_null_bytes)
            rows = writer.write_columns(scratch.columns, scratch.num_rows)
        else:
            rows = writer.write_columns(batch.columns, batch.num_rows)
        self._send(writer)
        self.state.rows_copied += rows
        logger.debug(f'Sent {rows:,} rows ({len(writer):,} bytes) to {self.table}')
        return rows

    def end_transfer(self) -> int:
        """Finish the stream and check the server's final status.

        Returns
            Number of rows copied, as reported by the server when available

        Raises
            ProtocolError: If the final status is not COMMAND_OK
        """
        self.state.require_open('end_transfer')
        try:
            writer = self._new_writer()
            writer.write_footer()
            self._send(writer)
            self.transport.end_copy()
            result = self.transport.get_result()
            if _result_status(result) != pq.ExecStatus.COMMAND_OK:
                message = _result_message(result, self.transport)
                self._drain_results()
                logger.error(f'Failed to copy data into {self.table}: {message}')
                raise ProtocolError(message, self.command)
            self._drain_results()
        except Exception:
            self.state.abandon()
            raise
        self.state.close()

        rows = getattr(result, 'command_tuples', None)
        if rows is None:
            rows = self.state.rows_copied
        self.rows_copied = rows
        logger.info(f'Copied {rows:,} rows into {self.table} '
                    f'({self.state.chunks_sent} chunks, {self.state.bytes_sent:,} bytes)')
        return rows

    def abort(self, message: str = 'COPY aborted by client') -> None:
        """End the stream with an error so the server discards the COPY.
        """
        self.state.require_open('abort')
        logger.warning(f'Aborting COPY into {self.table}: {message}')
        try:
            self.transport.end_copy(message)
            self._drain_results()
        finally:
            self.state.abandon()


@contextmanager
def copy_session(cn: Any, table: str, columns: Sequence[str] | None = None,
                 schema: str | None = None, format: CopyFormat | str | None = None,
                 options: CopyOptions | None = None,
                 batch_schema: pa.Schema | None = None, **kwargs: Any) -> Iterator[CopyDriver]:
    """Run one COPY transfer around a block.

    The transfer is ended when the block completes and aborted when it raises.
    """
    driver = CopyDriver(cn, options, **kwargs)
    driver.begin_transfer(table, columns=columns, format=format, schema=schema,
                          batch_schema=batch_schema)
    try:
        yield driver
    except BaseException as exc:
        if driver.state.copy_in:
            try:
                driver.abort(f'COPY aborted: {exc}')
            except DatabaseError as abort_err:
                logger.error(f'Could not abort COPY into {table}: {abort_err}')
        raise
    if driver.state.copy_in:
        driver.end_transfer()
