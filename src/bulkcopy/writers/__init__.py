"""
Row writer factory for COPY formats.
"""
from bulkcopy.options import CopyFormat
from bulkcopy.writers.base import _WRITER_REGISTRY
from bulkcopy.writers.base import PreparedColumn as PreparedColumn
from bulkcopy.writers.base import RowWriter as RowWriter
from bulkcopy.writers.base import register_writer as register_writer
from bulkcopy.writers.binary import BinaryWriter as BinaryWriter
from bulkcopy.writers.text import TextWriter as TextWriter


def get_writer_class(format: CopyFormat) -> type[RowWriter]:
    """Get the row writer class for a resolved copy format.
    """
    if format not in _WRITER_REGISTRY:
        available = [f.value for f in _WRITER_REGISTRY]
        raise ValueError(f'Unsupported copy format: {format}. Available: {available}')
    return _WRITER_REGISTRY[format]


def get_available_formats() -> list[CopyFormat]:
    """Return list of formats with a registered writer."""
    return list(_WRITER_REGISTRY.keys())
