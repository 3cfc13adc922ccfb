"""
Low-level COPY transport over psycopg's libpq wrapper.

The copy driver talks to the server through four primitives: execute a
command, send a chunk of copy data, end the copy, and fetch a result. They
are implemented here on top of ``psycopg.pq.PGconn`` so the driver never
depends on how the connection was obtained (psycopg, SQLAlchemy, or a test
double).
"""
import logging
from typing import Any, Protocol, runtime_checkable

import psycopg
import sqlalchemy as sa
from psycopg.pq.abc import PGconn, PGresult

from bulkcopy.exceptions import TransportError

__all__ = [
    'Transport',
    'PGconnTransport',
    'resolve_transport',
    'get_raw_connection',
]

logger = logging.getLogger(__name__)

# libpq may refuse to queue a single oversized buffer forever
MAX_CHUNK_SIZE = 128 * 1024


@runtime_checkable
class Transport(Protocol):
    """The connection primitives the copy driver needs.
    """

    encoding: str

    def execute(self, command: str) -> Any: ...

    def send_chunk(self, data: bytes) -> None: ...

    def end_copy(self, error: str | None = None) -> None: ...

    def get_result(self) -> Any: ...

    def error_message(self) -> str: ...


def _decode(message: bytes | None, encoding: str = 'utf-8') -> str:
    if not message:
        return ''
    return message.decode(encoding, 'replace').strip()


class PGconnTransport:
    """Transport backed by a ``psycopg.pq.PGconn``.
    """

    def __init__(self, pgconn: PGconn, encoding: str = 'utf-8',
                 context: Any = None) -> None:
        self.pgconn = pgconn
        self.encoding = encoding
        # adaptation context for binary dumpers (the psycopg Connection when known)
        self.context = context

    def error_message(self) -> str:
        return _decode(self.pgconn.error_message, self.encoding)

    def execute(self, command: str) -> PGresult:
        logger.debug(f'Executing {command}')
        try:
            return self.pgconn.exec_(command.encode(self.encoding))
        except psycopg.OperationalError as err:
            raise TransportError(f'Error executing {command!r}: {err}') from err

    def send_chunk(self, data: bytes) -> None:
        """Send copy data, retrying while libpq reports it would block.
        """
        view = memoryview(data)
        for start in range(0, len(view), MAX_CHUNK_SIZE):
            self._put_copy_data(bytes(view[start:start + MAX_CHUNK_SIZE]))

    def _put_copy_data(self, data: bytes) -> None:
        try:
            while (result := self.pgconn.put_copy_data(data)) == 0:
                self.pgconn.flush()
        except psycopg.OperationalError as err:
            raise TransportError(f'Error during put_copy_data: {err}') from err
        if result < 0:
            raise TransportError(f'Error during put_copy_data: {self.error_message()}')

    def end_copy(self, error: str | None = None) -> None:
        message = error.encode(self.encoding) if error is not None else None
        try:
            while (result := self.pgconn.put_copy_end(message)) == 0:
                self.pgconn.flush()
        except psycopg.OperationalError as err:
            raise TransportError(f'Error during put_copy_end: {err}') from err
        if result < 0:
            raise TransportError(f'Error during put_copy_end: {self.error_message()}')

    def get_result(self) -> PGresult | None:
        return self.pgconn.get_result()


def get_raw_connection(connection: Any) -> Any:
    """Extract the psycopg connection from SQLAlchemy wrappers.
    """
    raw_conn = connection
    if isinstance(raw_conn, sa.Connection):
        raw_conn = raw_conn.connection
    if hasattr(raw_conn, 'driver_connection'):
        raw_conn = raw_conn.driver_connection
    return raw_conn


def resolve_transport(cn: Any) -> Transport:
    """Build a transport for any supported connection object.

    Accepts an object already implementing Transport, a psycopg Connection,
    a SQLAlchemy Connection or pooled connection wrapping one, or a bare PGconn.
    """
    if isinstance(cn, Transport):
        return cn
    raw_conn = get_raw_connection(cn)
    if isinstance(raw_conn, psycopg.Connection):
        return PGconnTransport(raw_conn.pgconn, raw_conn.info.encoding, raw_conn)
    if hasattr(raw_conn, 'put_copy_data'):
        return PGconnTransport(raw_conn)
    raise TypeError(f'Cannot copy over a {type(cn).__module__}.{type(cn).__name__} connection')
