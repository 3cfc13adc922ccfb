import enum
import os
from dataclasses import dataclass

import pyarrow as pa

from bulkcopy.encoder import ColumnKind, column_kind
from bulkcopy.exceptions import ConfigurationError

__all__ = [
    'CopyFormat',
    'CopyOptions',
    'resolve_format',
    'NULL_BYTE_REPLACEMENT_ENV',
]

NULL_BYTE_REPLACEMENT_ENV = 'BULKCOPY_NULL_BYTE_REPLACEMENT'


class CopyFormat(enum.Enum):
    BINARY = 'binary'
    TEXT = 'text'
    AUTO = 'auto'

    @classmethod
    def coerce(cls, value: 'CopyFormat | str') -> 'CopyFormat':
        """Accept a CopyFormat or its case-insensitive name.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            available = [f.value for f in cls]
            raise ConfigurationError(f'format must be one of: {available}') from None


def _contains_struct(arrow_type: pa.DataType) -> bool:
    kind = column_kind(arrow_type)
    if kind is ColumnKind.STRUCT:
        return True
    if kind is ColumnKind.LIST:
        return _contains_struct(arrow_type.value_type)
    return False


def resolve_format(requested: CopyFormat, schema: pa.Schema | None = None) -> CopyFormat:
    """Resolve AUTO to a concrete format for the given batch schema.

    Binary COPY needs the server-side OID of a row type, which a bare Arrow
    struct does not carry, so any struct column selects TEXT.
    """
    requested = CopyFormat.coerce(requested)
    if requested is not CopyFormat.AUTO:
        return requested
    if schema is not None and any(_contains_struct(f.type) for f in schema):
        return CopyFormat.TEXT
    return CopyFormat.BINARY


def validate_null_byte_replacement(replacement: str | None) -> str | None:
    if replacement is not None and '\0' in replacement:
        raise ConfigurationError('NULL byte replacement string cannot contain NULL values')
    return replacement


@dataclass
class CopyOptions:
    """Options for one COPY transfer

    - format: `binary`, `text` or `auto` (binary unless a struct column is present)
    - null_byte_replacement: string substituted for NUL characters in text values,
      read from BULKCOPY_NULL_BYTE_REPLACEMENT when not given. Without one,
      a NUL in a text value is an error.
    - schema, columns: optional target schema and explicit column list
    - encoding: client encoding for text data, defaults to the connection's
    - batch_rows: maximum rows per pushed batch when splitting tables and frames
    """
    format: CopyFormat | str = CopyFormat.AUTO
    null_byte_replacement: str | None = None
    schema: str | None = None
    columns: list[str] | None = None
    encoding: str | None = None
    batch_rows: int = 100_000

    def __post_init__(self):
        self.format = CopyFormat.coerce(self.format)
        if self.null_byte_replacement is None:
            self.null_byte_replacement = os.environ.get(NULL_BYTE_REPLACEMENT_ENV)
        validate_null_byte_replacement(self.null_byte_replacement)
        if self.batch_rows <= 0:
            raise ConfigurationError(f'batch_rows must be positive, got {self.batch_rows}')
        if self.columns is not None:
            self.columns = list(self.columns)
