"""
Batch normalization and the reusable text scratch batch.

The copy driver only ever writes flat Arrow record batches. Tables,
pandas DataFrames and iterables of either are converted here.
"""
import logging
from collections.abc import Iterable, Iterator
from typing import Any

import pandas as pd
import pyarrow as pa

from bulkcopy.encoder import encode_as_text
from bulkcopy.exceptions import ContractViolation

__all__ = [
    'to_record_batches',
    'flatten_batch',
    'ScratchBatch',
]

logger = logging.getLogger(__name__)


def to_record_batches(data: Any, max_rows: int | None = None) -> Iterator[pa.RecordBatch]:
    """Yield record batches from any supported data source.

    Accepts a RecordBatch, a Table, a pandas DataFrame, or an iterable of
    those. Tables and DataFrames are split into batches of at most max_rows.
    """
    if isinstance(data, pa.RecordBatch):
        yield data
    elif isinstance(data, pa.Table):
        yield from data.to_batches(max_chunksize=max_rows)
    elif isinstance(data, pd.DataFrame):
        table = pa.Table.from_pandas(data, preserve_index=False)
        yield from table.to_batches(max_chunksize=max_rows)
    elif isinstance(data, Iterable) and not isinstance(data, (str, bytes, dict)):
        for item in data:
            yield from to_record_batches(item, max_rows)
    else:
        raise TypeError(f'Cannot copy data of type {type(data).__name__}')


def flatten_batch(batch: pa.RecordBatch) -> pa.RecordBatch:
    """Decode dictionary-encoded columns so every column is a plain array.
    """
    if not any(pa.types.is_dictionary(f.type) for f in batch.schema):
        return batch
    columns = [
        col.dictionary_decode() if pa.types.is_dictionary(col.type) else col
        for col in batch.columns
    ]
    return pa.RecordBatch.from_arrays(columns, names=batch.schema.names)


class ScratchBatch:
    """Reusable holder for the text-encoded columns of one batch.

    The column count is fixed by the first batch it encodes.
    """

    def __init__(self) -> None:
        self.columns: list[pa.StringArray] = []
        self.column_count = 0
        self.num_rows = 0

    @property
    def initialized(self) -> bool:
        return self.column_count > 0

    def prepare(self, column_count: int) -> None:
        """Initialize on first use, otherwise reset and verify the shape.
        """
        if not self.initialized:
            self.column_count = column_count
            logger.debug(f'Initialized scratch batch with {column_count} columns')
        elif column_count != self.column_count:
            raise ContractViolation(
                f'Batch has {column_count} columns, scratch batch was initialized '
                f'with {self.column_count}')
        self.reset()

    def reset(self) -> None:
        self.columns = []
        self.num_rows = 0

    def encode(self, batch: pa.RecordBatch, replace_null_bytes=None) -> 'ScratchBatch':
        """Encode every column of batch into its text representation.

        replace_null_bytes is applied to string values before they are
        quoted into array or row literals.
        """
        self.prepare(batch.num_columns)
        self.columns = [encode_as_text(col, batch.num_rows, replace_null_bytes)
                        for col in batch.columns]
        self.num_rows = batch.num_rows
        return self

    def column(self, i: int) -> pa.StringArray:
        return self.columns[i]
