"""
Data writers for various destinations.

Writers consume a row stream, buffer it into DataFrame chunks and hand the
chunks to pandas. ``write()`` returns the number of rows written.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Union
import logging
import os

import pandas as pd
import requests

from pipeflow.core.base import DataSink
from pipeflow.core.retry import RetryConfig, build_retrying
from pipeflow.core.row import Row

logger = logging.getLogger(__name__)


def _record(item: Any) -> Dict[str, Any]:
    if isinstance(item, Row):
        return item.to_mapping()
    if isinstance(item, dict):
        return item
    raise TypeError(f"Cannot write {type(item).__name__}; expected Row or dict")


def rows_to_frames(rows: Iterable[Any], chunksize: int = 10000) -> Iterator[pd.DataFrame]:
    """Buffer rows into DataFrames of at most ``chunksize`` records."""
    buffer: List[Dict[str, Any]] = []
    for item in rows:
        buffer.append(_record(item))
        if len(buffer) >= chunksize:
            yield pd.DataFrame.from_records(buffer)
            buffer = []
    if buffer:
        yield pd.DataFrame.from_records(buffer)


def to_jsonable(value: Any) -> Any:
    """Make a row value safe for json serialisation."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_jsonable(v) for v in value]
    return value


def _ensure_parent(filepath: str) -> None:
    os.makedirs(os.path.dirname(filepath) or ".", exist_ok=True)


def _truncate(filepath: str) -> None:
    # an empty overwrite must not leave the previous run's rows behind
    with open(filepath, "w"):
        pass


class CSVWriter(DataSink):
    """
    Write rows to a CSV file.

    Columns are fixed by the first chunk; fields that first appear later
    are dropped.

    Args:
        filepath: Output file path.
        mode: Write mode - 'w' (overwrite) or 'a' (append).
        delimiter: Field separator.
        encoding: File encoding.
        chunksize: Rows buffered per write.
        **kwargs: Additional arguments passed to DataFrame.to_csv.

    Example:
        written = pipeline.write(CSVWriter("output.csv"))
    """

    def __init__(
        self,
        filepath: str,
        mode: str = "w",
        delimiter: str = ",",
        encoding: str = "utf-8",
        chunksize: int = 10000,
        **kwargs,
    ):
        if not filepath:
            raise ValueError("filepath is required")
        if mode not in ("w", "a"):
            raise ValueError("mode must be 'w' or 'a'")

        self.filepath = filepath
        self.mode = mode
        self.delimiter = delimiter
        self.encoding = encoding
        self.chunksize = chunksize
        self.kwargs = kwargs

    def write(self, rows: Iterable[Any]) -> int:
        logger.info(f"Writing CSV: {self.filepath}")
        _ensure_parent(self.filepath)

        columns: Optional[List[str]] = None
        rows_written = 0

        for chunk in rows_to_frames(rows, self.chunksize):
            if columns is None:
                columns = list(chunk.columns)
                if self.mode == "w":
                    write_mode, write_header = "w", True
                else:
                    write_mode = "a"
                    write_header = (
                        not os.path.exists(self.filepath)
                        or os.path.getsize(self.filepath) == 0
                    )
            else:
                chunk = chunk.reindex(columns=columns)
                write_mode, write_header = "a", False

            chunk.to_csv(
                self.filepath,
                mode=write_mode,
                header=write_header,
                index=False,
                sep=self.delimiter,
                encoding=self.encoding,
                **self.kwargs,
            )
            rows_written += len(chunk)

        if columns is None and self.mode == "w":
            _truncate(self.filepath)

        logger.info(f"CSV write complete: {rows_written} rows written")
        return rows_written


class JSONWriter(DataSink):
    """
    Write rows to JSON/JSONL files.

    Args:
        filepath: Output file path.
        lines: If True, write as JSONL (one JSON object per line).
        indent: Indentation for array output (lines=False only).
        mode: Write mode for JSONL - 'w' (overwrite) or 'a' (append).
        chunksize: Rows buffered per write.
    """

    def __init__(
        self,
        filepath: str,
        lines: bool = True,
        indent: Optional[int] = None,
        mode: str = "w",
        chunksize: int = 10000,
        **kwargs,
    ):
        if not filepath:
            raise ValueError("filepath is required")
        if mode not in ("w", "a"):
            raise ValueError("mode must be 'w' or 'a'")
        if not lines:
            logger.debug("lines=False buffers all rows in memory before writing")

        self.filepath = filepath
        self.lines = lines
        self.indent = indent
        self.mode = mode
        self.chunksize = chunksize
        self.kwargs = kwargs

    def write(self, rows: Iterable[Any]) -> int:
        logger.info(f"Writing JSON: {self.filepath}")
        _ensure_parent(self.filepath)

        if self.lines:
            return self._write_jsonl(rows)
        return self._write_array(rows)

    def _write_jsonl(self, rows: Iterable[Any]) -> int:
        rows_written = 0
        for chunk in rows_to_frames(rows, self.chunksize):
            run_mode = "w" if (rows_written == 0 and self.mode == "w") else "a"
            chunk.to_json(
                self.filepath,
                orient="records",
                lines=True,
                mode=run_mode,
                date_format="iso",
                **self.kwargs,
            )
            rows_written += len(chunk)

        if rows_written == 0 and self.mode == "w":
            _truncate(self.filepath)

        logger.info(f"JSONL write complete: {rows_written} rows written")
        return rows_written

    def _write_array(self, rows: Iterable[Any]) -> int:
        frames = list(rows_to_frames(rows, self.chunksize))
        combined = pd.concat(frames, ignore_index=True) if frames else pd.DataFrame()
        combined.to_json(
            self.filepath,
            orient="records",
            indent=self.indent,
            date_format="iso",
            **self.kwargs,
        )
        logger.info(f"JSON write complete: {len(combined)} rows written")
        return len(combined)


class SQLWriter(DataSink):
    """
    Write rows to a SQL table through SQLAlchemy.

    Args:
        connection_string: SQLAlchemy connection string.
        table_name: Target table name.
        if_exists: Behavior if table exists - 'fail', 'replace', 'append'.
        schema: Optional database schema.
        chunksize: Rows buffered per insert batch.
    """

    def __init__(
        self,
        connection_string: str,
        table_name: str,
        if_exists: str = "append",
        schema: Optional[str] = None,
        chunksize: int = 1000,
        **kwargs,
    ):
        if not connection_string:
            raise ValueError("connection_string is required")
        if not table_name:
            raise ValueError("table_name is required")
        if if_exists not in ("fail", "replace", "append"):
            raise ValueError("if_exists must be 'fail', 'replace', or 'append'")

        self.connection_string = connection_string
        self.table_name = table_name
        self.if_exists = if_exists
        self.schema = schema
        self.chunksize = chunksize
        self.kwargs = kwargs

    def write(self, rows: Iterable[Any]) -> int:
        from sqlalchemy import create_engine

        logger.info(f"Writing to SQL table: {self.table_name}")

        engine = create_engine(self.connection_string)
        current_if_exists = self.if_exists
        rows_written = 0

        try:
            for chunk in rows_to_frames(rows, self.chunksize):
                chunk.to_sql(
                    self.table_name,
                    engine,
                    if_exists=current_if_exists,
                    index=False,
                    schema=self.schema,
                    **self.kwargs,
                )
                # later chunks extend the table written by the first one
                current_if_exists = "append"
                rows_written += len(chunk)

            logger.info(f"SQL write complete: {rows_written} rows written")
            return rows_written
        except Exception as e:
            logger.error(f"SQL write error: {e}")
            raise
        finally:
            engine.dispose()


class ParquetWriter(DataSink):
    """
    Write rows to a single Parquet file (buffers the whole stream).

    Args:
        filepath: Output file path.
        engine: Parquet engine.
        compression: Compression codec ('snappy', 'gzip', 'brotli', None).
    """

    def __init__(
        self,
        filepath: str,
        engine: str = "pyarrow",
        compression: Optional[str] = "snappy",
        **kwargs,
    ):
        if not filepath:
            raise ValueError("filepath is required")

        self.filepath = filepath
        self.engine = engine
        self.compression = compression
        self.kwargs = kwargs

    def write(self, rows: Iterable[Any]) -> int:
        logger.info(f"Writing Parquet: {self.filepath}")
        _ensure_parent(self.filepath)

        frames = list(rows_to_frames(rows))
        if not frames:
            logger.warning("No data to write")
            return 0

        combined = pd.concat(frames, ignore_index=True)
        combined.to_parquet(
            self.filepath,
            engine=self.engine,
            compression=self.compression,
            index=False,
            **self.kwargs,
        )
        logger.info(f"Parquet write complete: {len(combined)} rows written")
        return len(combined)


class ExcelWriter(DataSink):
    """
    Write rows to an Excel sheet (buffers the whole stream).

    Args:
        filepath: Output file path (.xlsx).
        sheet_name: Target sheet name.
    """

    def __init__(self, filepath: str, sheet_name: str = "Sheet1", **kwargs):
        if not filepath:
            raise ValueError("filepath is required")
        if not filepath.endswith((".xlsx", ".xlsm")):
            logger.warning("Excel files should have .xlsx extension")

        self.filepath = filepath
        self.sheet_name = sheet_name
        self.kwargs = kwargs

    def write(self, rows: Iterable[Any]) -> int:
        logger.info(f"Writing Excel: {self.filepath}")
        _ensure_parent(self.filepath)

        frames = list(rows_to_frames(rows))
        combined = pd.concat(frames, ignore_index=True) if frames else pd.DataFrame()
        combined.to_excel(
            self.filepath,
            sheet_name=self.sheet_name,
            index=False,
            **self.kwargs,
        )
        logger.info(f"Excel write complete: {len(combined)} rows written")
        return len(combined)


class APIWriter(DataSink):
    """
    POST rows to a JSON endpoint in batches.

    Each request body is a JSON array of at most ``batch_size`` row objects.
    Transient failures (connection errors, timeouts, 429 and 5xx) are retried.

    Args:
        url: Endpoint URL.
        batch_size: Rows per request.
        headers: Request headers.
        auth: (username, password) tuple for basic auth or a bearer token.
        timeout: Request timeout in seconds.
        retry_config: Retry policy for transient failures.
        session: Optional requests.Session to reuse.
    """

    def __init__(
        self,
        url: str,
        batch_size: int = 100,
        headers: Optional[Dict[str, str]] = None,
        auth: Optional[Union[tuple, str]] = None,
        timeout: float = 30,
        retry_config: Optional[RetryConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        if not url:
            raise ValueError("url is required")
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self.url = url
        self.batch_size = batch_size
        self.headers = headers or {}
        self.auth = auth
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()
        self.session = session

    def write(self, rows: Iterable[Any]) -> int:
        logger.info(f"Writing to API: {self.url}")

        session = self.session or requests.Session()
        session.headers.update(self.headers)
        if isinstance(self.auth, tuple):
            session.auth = self.auth
        elif isinstance(self.auth, str):
            session.headers["Authorization"] = f"Bearer {self.auth}"

        rows_written = 0
        batch: List[Dict[str, Any]] = []
        try:
            for item in rows:
                batch.append(to_jsonable(_record(item)))
                if len(batch) >= self.batch_size:
                    self._post(session, batch)
                    rows_written += len(batch)
                    batch = []
            if batch:
                self._post(session, batch)
                rows_written += len(batch)
        except Exception as e:
            logger.error(f"API write error after {rows_written} rows: {e}")
            raise
        finally:
            if self.session is None:
                session.close()

        logger.info(f"API write complete: {rows_written} rows written")
        return rows_written

    def _post(self, session: requests.Session, batch: List[Dict[str, Any]]) -> None:
        def _request() -> requests.Response:
            response = session.post(self.url, json=batch, timeout=self.timeout)
            response.raise_for_status()
            return response

        logger.debug(f"Posting batch of {len(batch)} rows to {self.url}")
        build_retrying(self.retry_config)(_request)


class NullWriter(DataSink):
    """
    Discards all rows. Useful for testing or dry runs.
    """

    def __init__(self, log_stats: bool = True):
        self.log_stats = log_stats

    def write(self, rows: Iterable[Any]) -> int:
        count = sum(1 for _ in rows)
        if self.log_stats:
            logger.info(f"NullWriter consumed {count} rows")
        return count


class CallbackWriter(DataSink):
    """
    Call a function for each row.

    Args:
        callback: Function called with each row.
        on_complete: Optional function called with the row count at the end.

    Example:
        collected = []
        pipeline.write(CallbackWriter(collected.append))
    """

    def __init__(
        self,
        callback: Callable[[Any], Any],
        on_complete: Optional[Callable[[int], Any]] = None,
    ):
        if not callable(callback):
            raise ValueError("callback must be callable")

        self.callback = callback
        self.on_complete = on_complete

    def write(self, rows: Iterable[Any]) -> int:
        count = 0
        for row in rows:
            self.callback(row)
            count += 1

        if self.on_complete:
            self.on_complete(count)
        return count
