import pyarrow as pa
import pytest
from bulkcopy.exceptions import ConfigurationError
from bulkcopy.options import NULL_BYTE_REPLACEMENT_ENV, CopyFormat, CopyOptions
from bulkcopy.options import resolve_format


def test_format_coerce():
    """Formats accept enum members and case-insensitive names"""
    assert CopyFormat.coerce(CopyFormat.TEXT) is CopyFormat.TEXT
    assert CopyFormat.coerce('Binary') is CopyFormat.BINARY
    assert CopyFormat.coerce('auto') is CopyFormat.AUTO

    with pytest.raises(ConfigurationError, match='format must be one of'):
        CopyFormat.coerce('csv')


def test_resolve_explicit_format():
    """An explicit format is used as is, whatever the schema"""
    schema = pa.schema([('p', pa.struct([('a', pa.int64())]))])
    assert resolve_format(CopyFormat.BINARY, schema) is CopyFormat.BINARY
    assert resolve_format('text') is CopyFormat.TEXT


def test_resolve_auto():
    """AUTO selects TEXT for struct columns, including structs inside lists"""
    flat = pa.schema([('a', pa.int64()), ('b', pa.list_(pa.string()))])
    nested = pa.schema([('a', pa.int64()), ('b', pa.list_(pa.struct([('x', pa.int8())])))])
    row = pa.schema([('p', pa.struct([('x', pa.int8())]))])

    assert resolve_format(CopyFormat.AUTO, flat) is CopyFormat.BINARY
    assert resolve_format(CopyFormat.AUTO, nested) is CopyFormat.TEXT
    assert resolve_format(CopyFormat.AUTO, row) is CopyFormat.TEXT
    assert resolve_format(CopyFormat.AUTO) is CopyFormat.BINARY


def test_options_defaults(monkeypatch):
    """Defaults: AUTO format, no NUL replacement, 100k row batches"""
    monkeypatch.delenv(NULL_BYTE_REPLACEMENT_ENV, raising=False)
    options = CopyOptions()
    assert options.format is CopyFormat.AUTO
    assert options.null_byte_replacement is None
    assert options.batch_rows == 100_000


def test_options_coerce_values():
    """String formats are coerced and column lists copied"""
    columns = ('a', 'b')
    options = CopyOptions(format='TEXT', columns=columns)
    assert options.format is CopyFormat.TEXT
    assert options.columns == ['a', 'b']


def test_options_replacement_from_env(monkeypatch):
    """The NUL replacement falls back to the environment"""
    monkeypatch.setenv(NULL_BYTE_REPLACEMENT_ENV, ' ')
    assert CopyOptions().null_byte_replacement == ' '
    assert CopyOptions(null_byte_replacement='?').null_byte_replacement == '?'


def test_options_invalid():
    """Invalid values are rejected before any transfer starts"""
    with pytest.raises(ConfigurationError, match='cannot contain NULL'):
        CopyOptions(null_byte_replacement='a\0')
    with pytest.raises(ConfigurationError, match='batch_rows'):
        CopyOptions(batch_rows=0)
    with pytest.raises(ConfigurationError):
        CopyOptions(format='xml')


if __name__ == '__main__':
    __import__('pytest').main([__file__])
