"""
Entry points that start a pipeline from a source.

Example:
    from pipeflow import flow

    count = (
        flow.from_csv("people.csv")
        .filter(lambda r: r.get_typed("age", int) >= 25)
        .remove_duplicates("email")
        .to_json("adults.jsonl")
    )
"""

from typing import Any, Dict, Iterable, List, Optional, Union

import pandas as pd

from pipeflow.components.readers import (
    APIReader,
    CollectionReader,
    CSVReader,
    ExcelReader,
    JSONReader,
    ParquetReader,
    SQLReader,
)
from pipeflow.core.base import DataSource
from pipeflow.core.errors import ArgumentError
from pipeflow.core.pipeline import Pipeline
from pipeflow.core.row import Row


def from_csv(
    filepath: str,
    delimiter: str = ",",
    has_headers: bool = True,
    **kwargs,
) -> Pipeline[Row]:
    return Pipeline(CSVReader(filepath, delimiter=delimiter, has_headers=has_headers, **kwargs))


def from_json(filepath: str, lines: bool = False, **kwargs) -> Pipeline[Row]:
    return Pipeline(JSONReader(filepath, lines=lines, **kwargs))


def from_excel(filepath: str, sheet_name: Union[str, int] = 0, **kwargs) -> Pipeline[Row]:
    return Pipeline(ExcelReader(filepath, sheet_name=sheet_name, **kwargs))


def from_parquet(filepath: str, columns: Optional[List[str]] = None, **kwargs) -> Pipeline[Row]:
    return Pipeline(ParquetReader(filepath, columns=columns, **kwargs))


def from_sql(
    connection_string: str,
    query: Optional[str] = None,
    table: Optional[str] = None,
    params: Optional[Dict[str, Any]] = None,
    **kwargs,
) -> Pipeline[Row]:
    return Pipeline(SQLReader(connection_string, query=query, table=table, params=params, **kwargs))


def from_api(url: str, **kwargs) -> Pipeline[Row]:
    return Pipeline(APIReader(url, **kwargs))


def from_collection(items: Iterable[Any]) -> Pipeline:
    """Pipeline over arbitrary in-memory elements (not converted to rows)."""
    return Pipeline(items)


def from_rows(data: Union[pd.DataFrame, Iterable[Any]]) -> Pipeline[Row]:
    """Pipeline over dicts, Rows or DataFrames, converted to Rows."""
    return Pipeline(CollectionReader(data))


def from_source(source: DataSource) -> Pipeline[Row]:
    if not isinstance(source, DataSource):
        raise ArgumentError("source must be a DataSource instance")
    return Pipeline(source)
