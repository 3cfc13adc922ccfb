"""
Tests for the TEXT and BINARY row writers.
"""
import datetime
import struct

import pyarrow as pa
import pytest
from bulkcopy.batch import ScratchBatch
from bulkcopy.exceptions import ContractViolation, TypeConversionError
from bulkcopy.options import CopyFormat
from bulkcopy.state import CopyState
from bulkcopy.writers import BinaryWriter, TextWriter, get_available_formats
from bulkcopy.writers import get_writer_class
from bulkcopy.writers.binary import HEADER_SIZE, SIGNATURE
from psycopg.adapt import Transformer


def make_state(format, replacement=None):
    state = CopyState()
    state.initialize(format, replacement)
    return state


def read_binary_rows(data):
    """Split a binary COPY body (no header or footer) into rows of raw field payloads"""
    rows, pos = [], 0
    while pos < len(data):
        (count,) = struct.unpack_from('!h', data, pos)
        pos += 2
        fields = []
        for _ in range(count):
            (length,) = struct.unpack_from('!i', data, pos)
            pos += 4
            if length == -1:
                fields.append(None)
                continue
            fields.append(data[pos:pos + length])
            pos += length
        rows.append(fields)
    return rows


class TestRegistry:

    def test_formats_registered(self):
        """Both concrete formats have a writer"""
        assert set(get_available_formats()) == {CopyFormat.TEXT, CopyFormat.BINARY}
        assert get_writer_class(CopyFormat.TEXT) is TextWriter
        assert get_writer_class(CopyFormat.BINARY) is BinaryWriter

    def test_auto_has_no_writer(self):
        """AUTO must be resolved before a writer is chosen"""
        with pytest.raises(ValueError, match='Unsupported copy format'):
            get_writer_class(CopyFormat.AUTO)


class TestTextWriter:

    def test_simple_rows(self, simple_batch):
        """Tab-separated fields, newline rows, backspace for NULL"""
        writer = TextWriter(make_state(CopyFormat.TEXT))
        scratch = ScratchBatch().encode(simple_batch)

        rows = writer.write_columns(scratch.columns, scratch.num_rows)

        assert rows == 3
        assert writer.rows_written == 3
        assert writer.getvalue() == b'1\talice\n2\t\x08\n\x08\tcarol\n'

    def test_no_header_or_footer(self):
        """TEXT streams carry no framing"""
        writer = TextWriter(make_state(CopyFormat.TEXT))
        writer.write_header()
        writer.write_footer()
        assert writer.getvalue() == b''
        assert len(writer) == 0

    def test_escapes(self):
        """Control characters and backslashes are escaped so they cannot end a field or row"""
        writer = TextWriter(make_state(CopyFormat.TEXT))
        column = pa.array(['a\tb\nc\\d\x08e\rf\x0cg\x0bh'])

        writer.write_columns([column], 1)

        assert writer.getvalue() == b'a\\tb\\nc\\\\d\\be\\rf\\fg\\vh\n'

    def test_composite_row(self, composite_batch):
        """Composite literals pass through the text escapes unchanged except for backslashes"""
        writer = TextWriter(make_state(CopyFormat.TEXT))
        scratch = ScratchBatch().encode(composite_batch.slice(0, 1))

        writer.write_columns(scratch.columns, scratch.num_rows)

        assert writer.getvalue() == b'{a,b c}\t{{1,2},{3}}\t(1,p)\t\\\\x00FF\n'

    def test_empty_string_is_not_null(self):
        """An empty string is an empty field, distinct from the NULL sentinel"""
        writer = TextWriter(make_state(CopyFormat.TEXT))
        writer.write_columns([pa.array(['', None])], 2)
        assert writer.getvalue() == b'\n\x08\n'

    def test_null_byte_without_replacement(self):
        """A NUL character is rejected when no replacement is configured"""
        writer = TextWriter(make_state(CopyFormat.TEXT))
        with pytest.raises(TypeConversionError, match='NULL byte'):
            writer.write_columns([pa.array(['a\0b'])], 1)

    def test_null_byte_replaced(self):
        """Every NUL character is replaced by the configured string"""
        writer = TextWriter(make_state(CopyFormat.TEXT, '?'))
        writer.write_columns([pa.array(['a\0b\0'])], 1)
        assert writer.getvalue() == b'a?b?\n'

    def test_encoding(self):
        """Text is encoded with the writer's client encoding"""
        writer = TextWriter(make_state(CopyFormat.TEXT), encoding='latin-1')
        writer.write_columns([pa.array(['café'])], 1)
        assert writer.getvalue() == b'caf\xe9\n'


class TestBinaryWriter:

    @pytest.fixture
    def writer(self):
        return BinaryWriter(make_state(CopyFormat.BINARY), context=Transformer())

    def test_header(self, writer):
        """Header is the PGCOPY signature followed by zero flags and extension length"""
        writer.write_header()
        assert writer.getvalue() == SIGNATURE + b'\x00' * 8
        assert len(writer) == HEADER_SIZE == 19

    def test_footer(self, writer):
        """Footer is a field count of -1"""
        writer.write_footer()
        assert writer.getvalue() == b'\xff\xff'

    def test_int64_with_null(self, writer):
        """Each row is a field count then length-prefixed payloads, -1 for NULL"""
        writer.write_columns([pa.array([1, None], type=pa.int64())], 2)

        data = writer.getvalue()
        assert len(data) == 20
        assert data == (b'\x00\x01' + b'\x00\x00\x00\x08' + struct.pack('!q', 1)
                        + b'\x00\x01' + b'\xff\xff\xff\xff')

    def test_simple_batch(self, writer, simple_batch):
        """Text and integer fields are encoded with the column's binary dumper"""
        writer.write_columns(simple_batch.columns, simple_batch.num_rows)

        assert writer.rows_written == 3
        assert read_binary_rows(writer.getvalue()) == [
            [struct.pack('!q', 1), b'alice'],
            [struct.pack('!q', 2), None],
            [None, b'carol'],
        ]

    def test_typed_batch(self, writer, typed_batch):
        """Every supported primitive type encodes to its PostgreSQL binary form"""
        writer.write_columns(typed_batch.columns, typed_batch.num_rows)

        (row,) = read_binary_rows(writer.getvalue())
        fields = dict(zip(typed_batch.schema.names, row))
        assert len(row) == typed_batch.num_columns
        assert fields['flag'] == b'\x01'
        assert fields['small'] == struct.pack('!h', -32768)
        assert fields['medium'] == struct.pack('!i', 2147483647)
        assert fields['big'] == struct.pack('!q', 9223372036854775807)
        assert fields['real'] == struct.pack('!f', 1.5)
        assert fields['double'] == struct.pack('!d', 3.25)
        assert fields['label'] == b'Variable length string'
        assert fields['raw'] == b'\x01\x02\x03'
        days = (datetime.date(2023, 5, 15) - datetime.date(2000, 1, 1)).days
        assert fields['day'] == struct.pack('!i', days)
        micros = int((datetime.datetime(2023, 5, 15, 14, 30, 45)
                      - datetime.datetime(2000, 1, 1)).total_seconds()) * 1_000_000
        assert fields['stamp'] == struct.pack('!q', micros)
        # numeric: ndigits, weight, sign, dscale header followed by base-10000 digits
        ndigits, weight, sign, dscale = struct.unpack_from('!hhHh', fields['amount'])
        assert (sign, dscale) == (0, 3)
        assert len(fields['amount']) == 8 + 2 * ndigits

    def test_int_array(self, writer):
        """Lists are dumped as one-dimensional arrays of the element type"""
        writer.write_columns([pa.array([[1, 2]], type=pa.list_(pa.int32()))], 1)

        ((payload,),) = read_binary_rows(writer.getvalue())
        ndim, hasnull, element_oid, length, lbound = struct.unpack_from('!iiIii', payload)
        assert (ndim, hasnull, element_oid, length, lbound) == (1, 0, 23, 2, 1)
        assert payload[20:] == (struct.pack('!i', 4) + struct.pack('!i', 1)
                                + struct.pack('!i', 4) + struct.pack('!i', 2))

    def test_nested_array(self, writer):
        """Nested lists become multidimensional arrays"""
        writer.write_columns([pa.array([[[1], [None]]], type=pa.list_(pa.list_(pa.int64())))], 1)

        ((payload,),) = read_binary_rows(writer.getvalue())
        ndim, hasnull, element_oid = struct.unpack_from('!iiI', payload)
        assert (ndim, hasnull, element_oid) == (2, 1, 20)

    def test_ragged_nested_array(self, writer):
        """Arrays whose sub-lists differ in length cannot be encoded"""
        column = pa.array([[[1, 2], [3]]], type=pa.list_(pa.list_(pa.int64())))
        with pytest.raises(TypeConversionError, match='Cannot encode'):
            writer.write_columns([column], 1)

    def test_null_byte_in_text(self):
        """NUL characters in binary text fields follow the same replacement rule"""
        strict = BinaryWriter(make_state(CopyFormat.BINARY), context=Transformer())
        with pytest.raises(TypeConversionError, match='NULL byte'):
            strict.write_columns([pa.array(['a\0b'])], 1)

        lenient = BinaryWriter(make_state(CopyFormat.BINARY, ''), context=Transformer())
        lenient.write_columns([pa.array(['a\0b', None]), pa.array([['x\0'], None])], 2)
        rows = read_binary_rows(lenient.getvalue())
        assert rows[0][0] == b'ab'
        assert rows[1] == [None, None]

    def test_out_of_range_value(self, writer):
        """Values that do not fit the target type raise TypeConversionError"""
        with pytest.raises(TypeConversionError):
            writer.write_columns([pa.array([2 ** 63], type=pa.uint64())], 1)

    def test_unsupported_type(self, writer):
        """Struct columns have no binary encoding"""
        column = pa.array([{'a': 1}], type=pa.struct([('a', pa.int64())]))
        with pytest.raises(TypeConversionError, match='No PostgreSQL binary encoding'):
            writer.write_columns([column], 1)

    def test_field_count_mismatch(self, writer):
        """Finishing a row with missing fields is a contract violation"""
        writer.begin_row(2)
        with pytest.raises(ContractViolation):
            writer.finish_row()


if __name__ == '__main__':
    __import__('pytest').main([__file__])
