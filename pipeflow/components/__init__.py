"""Adapters: readers and writers."""

from pipeflow.components.readers import (
    CSVReader,
    JSONReader,
    ExcelReader,
    ParquetReader,
    SQLReader,
    APIReader,
    CollectionReader,
)
from pipeflow.components.writers import (
    CSVWriter,
    JSONWriter,
    SQLWriter,
    ParquetWriter,
    ExcelWriter,
    APIWriter,
    CallbackWriter,
    NullWriter,
)

__all__ = [
    # Readers
    "CSVReader",
    "JSONReader",
    "ExcelReader",
    "ParquetReader",
    "SQLReader",
    "APIReader",
    "CollectionReader",
    # Writers
    "CSVWriter",
    "JSONWriter",
    "SQLWriter",
    "ParquetWriter",
    "ExcelWriter",
    "APIWriter",
    "CallbackWriter",
    "NullWriter",
]
