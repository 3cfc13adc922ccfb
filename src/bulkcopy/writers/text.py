"""
COPY ... (FORMAT TEXT) row writer.

Values arrive already rendered as text by the composite encoder. The writer
applies the COPY text escapes so that no value can be mistaken for a field
delimiter, a row end, or the NULL sentinel.
"""
from bulkcopy.options import CopyFormat
from bulkcopy.writers.base import PreparedColumn, RowWriter, register_writer

__all__ = ['TextWriter', 'NULL_SENTINEL', 'DELIMITER', 'ROW_TERMINATOR']

# The backspace byte is declared as the NULL string in the COPY command.
# A literal backspace inside a value is always escaped, so the raw byte
# only ever appears as a whole field meaning NULL.
NULL_SENTINEL = '\b'
DELIMITER = '\t'
ROW_TERMINATOR = '\n'

_ESCAPES = str.maketrans({
    '\\': '\\\\',
    '\n': '\\n',
    '\r': '\\r',
    '\t': '\\t',
    '\b': '\\b',
    '\f': '\\f',
    '\v': '\\v',
})


@register_writer(CopyFormat.TEXT)
class TextWriter(RowWriter):
    """Tab-delimited, newline-terminated rows with a backspace NULL sentinel.
    """

    def _write(self, text: str) -> None:
        self.buffer += text.encode(self.encoding)

    def escape(self, value: str) -> str:
        return self.state.replace_null_bytes(value).translate(_ESCAPES)

    def write_null(self) -> None:
        self._write(NULL_SENTINEL)

    def write_value(self, column: PreparedColumn, row: int) -> None:
        value = column.values[row]
        if value is None:
            self.write_null()
            return
        self._write(self.escape(value))

    def write_separator(self) -> None:
        self._write(DELIMITER)

    def finish_row(self) -> None:
        self._write(ROW_TERMINATOR)
        self.rows_written += 1
