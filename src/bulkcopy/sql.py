"""
SQL generation for COPY FROM STDIN commands.
"""
from collections.abc import Sequence

from bulkcopy.options import CopyFormat

__all__ = ['quote_identifier', 'qualified_name', 'format_clause', 'build_copy_command']

# Backspace as NULL string: a control byte that never occurs unescaped in
# text produced by TextWriter
TEXT_FORMAT_CLAUSE = "(FORMAT TEXT, NULL E'\\b')"
BINARY_FORMAT_CLAUSE = '(FORMAT BINARY)'


def quote_identifier(identifier: str) -> str:
    """Safely quote a PostgreSQL identifier.

    Parameters
        identifier: Schema, table or column name

    Returns
        Quoted identifier
    """
    return '"' + identifier.replace('"', '""') + '"'


def qualified_name(table: str, schema: str | None = None) -> str:
    """Return the quoted, optionally schema-qualified table name.
    """
    if schema:
        return f'{quote_identifier(schema)}.{quote_identifier(table)}'
    return quote_identifier(table)


def format_clause(format: CopyFormat) -> str:
    if format is CopyFormat.BINARY:
        return BINARY_FORMAT_CLAUSE
    if format is CopyFormat.TEXT:
        return TEXT_FORMAT_CLAUSE
    raise ValueError(f'Unsupported copy format: {format}')


def build_copy_command(table: str, columns: Sequence[str] | None = None,
                       schema: str | None = None,
                       format: CopyFormat = CopyFormat.BINARY) -> str:
    """Build the COPY ... FROM STDIN command for a resolved format.

    >>> build_copy_command('t', ['a', 'b'], schema='s')
    'COPY "s"."t" ("a", "b") FROM STDIN (FORMAT BINARY)'
    """
    parts = ['COPY', qualified_name(table, schema)]
    if columns:
        parts.append('(' + ', '.join(quote_identifier(c) for c in columns) + ')')
    parts.append('FROM STDIN')
    parts.append(format_clause(format))
    return ' '.join(parts)
