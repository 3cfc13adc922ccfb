"""
Bulk copy exception classes.
"""
import psycopg


class DatabaseError(Exception):
    """Base class for all bulk copy errors.
    """


class ConfigurationError(DatabaseError):
    """Invalid copy configuration, detected before any data is sent.
    """


class ProtocolError(DatabaseError):
    """The server rejected the COPY command or finished with a non-success status.
    """

    def __init__(self, message: str, command: str | None = None) -> None:
        self.message = message
        self.command = command
        if command:
            super().__init__(f'{command!r}: {message}')
        else:
            super().__init__(message)


class TransportError(DatabaseError):
    """Hard failure sending copy data or ending the copy stream.
    """


class TypeConversionError(DatabaseError):
    """Error converting a column value to its COPY representation.
    """


class ContractViolation(AssertionError):
    """Programming error: out-of-order lifecycle call or mismatched batch shape.

    Not a DatabaseError: handlers for database failures never catch it.
    """


DbConnectionError = (
    psycopg.OperationalError,
    psycopg.InterfaceError,
    TransportError,
    )
