"""
Per-transfer session state owned by the copy driver.
"""
import enum
from dataclasses import dataclass

from bulkcopy.exceptions import ContractViolation, TypeConversionError
from bulkcopy.options import CopyFormat, validate_null_byte_replacement

__all__ = ['CopyState', 'CopyStatus']


class CopyStatus(enum.Enum):
    UNINITIALIZED = 'uninitialized'
    ACTIVE = 'active'
    CLOSED = 'closed'
    FAILED = 'failed'


@dataclass
class CopyState:
    """Format, NUL handling and lifecycle of one COPY transfer.
    """
    format: CopyFormat = CopyFormat.BINARY
    null_byte_replacement: str | None = None
    status: CopyStatus = CopyStatus.UNINITIALIZED
    rows_copied: int = 0
    chunks_sent: int = 0
    bytes_sent: int = 0
    copy_in: bool = False

    def initialize(self, format: CopyFormat, null_byte_replacement: str | None = None) -> None:
        """Set format and NUL replacement, raising ConfigurationError if the
        replacement itself contains NUL.
        """
        if self.status is not CopyStatus.UNINITIALIZED:
            raise ContractViolation(f'Copy state already initialized ({self.status.value})')
        if format is CopyFormat.AUTO:
            raise ContractViolation('Copy format must be resolved before initialization')
        self.null_byte_replacement = validate_null_byte_replacement(null_byte_replacement)
        self.format = format

    @property
    def has_null_byte_replacement(self) -> bool:
        return self.null_byte_replacement is not None

    @property
    def is_active(self) -> bool:
        return self.status is CopyStatus.ACTIVE

    def activate(self) -> None:
        if self.status is not CopyStatus.UNINITIALIZED:
            raise ContractViolation(f'Cannot begin a transfer that is {self.status.value}')
        self.status = CopyStatus.ACTIVE
        self.copy_in = True

    def require_active(self, operation: str) -> None:
        if self.status is not CopyStatus.ACTIVE:
            raise ContractViolation(f'{operation} called on a transfer that is {self.status.value}')

    def require_open(self, operation: str) -> None:
        """Require a stream the server accepted and that is not yet closed.

        A FAILED stream is still open: the caller decides whether to end or abort it.
        """
        if not self.copy_in or self.status is CopyStatus.CLOSED:
            raise ContractViolation(f'{operation} called on a transfer that is {self.status.value}')

    def close(self) -> None:
        self.require_open('end_transfer')
        self.status = CopyStatus.CLOSED
        self.copy_in = False

    def fail(self) -> None:
        if self.status is not CopyStatus.CLOSED:
            self.status = CopyStatus.FAILED

    def abandon(self) -> None:
        """Mark the stream as ended without success.
        """
        self.status = CopyStatus.FAILED
        self.copy_in = False

    def record_chunk(self, size: int) -> None:
        self.chunks_sent += 1
        self.bytes_sent += size

    def replace_null_bytes(self, value: str) -> str:
        """Substitute the configured replacement for every NUL character.
        """
        if '\0' not in value:
            return value
        if not self.has_null_byte_replacement:
            raise TypeConversionError(
                'Attempting to write a string containing a NULL byte, which PostgreSQL '
                'does not support. Set null_byte_replacement to substitute it.')
        return value.replace('\0', self.null_byte_replacement)
