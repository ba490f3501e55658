from abc import ABC, abstractmethod
from typing import (
    Any,
    Awaitable,
    Callable,
    Generic,
    Iterable,
    Iterator,
    List,
    Optional,
    Tuple,
    TypeVar,
    Union,
)
import asyncio
import threading

from pipeflow.core.errors import ArgumentError, EmptyError, OperationCancelled, RangeError
from pipeflow.core.row import Row

T = TypeVar("T")
R = TypeVar("R")
K = TypeVar("K")

Stage = Callable[[Iterable[Any]], Iterable[Any]]


class DataSource(ABC):
    @abstractmethod
    def read(self) -> Iterable[Row]:
        # Every call must start a fresh pass; pipelines call it once per execution.
        pass


class DataSink(ABC):
    @abstractmethod
    def write(self, rows: Iterable[Row]) -> int:
        # Consumes the stream and returns the number of rows written.
        pass


def require_callable(value: Any, name: str) -> None:
    if value is None or not callable(value):
        raise ArgumentError(f"{name} must be callable")


def require_count(value: Any, name: str = "count") -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ArgumentError(f"{name} must be an integer")
    if value < 0:
        raise RangeError(f"{name} must be non-negative, got {value}")


def check_cancelled(cancel: Optional[threading.Event]) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled("operation cancelled")


class PipelineBase(ABC, Generic[T]):
    """
    Operation contract shared by Pipeline and ParallelPipeline.

    Chain operations return a new pipeline and never iterate the source.
    Terminal operations (execute, to_list, count, first, for_each, ...)
    evaluate the whole chain from the source every time they are called.
    """

    # Chain operations -----------------------------------------------------

    @abstractmethod
    def filter(self, predicate: Callable[[T], bool]) -> "PipelineBase[T]":
        pass

    def where(self, predicate: Callable[[T], bool]) -> "PipelineBase[T]":
        return self.filter(predicate)

    @abstractmethod
    def map(self, selector: Callable[[T], R]) -> "PipelineBase[R]":
        pass

    def select(self, selector: Callable[[T], R]) -> "PipelineBase[R]":
        return self.map(selector)

    @abstractmethod
    def select_many(self, selector: Callable[[T], Iterable[R]]) -> "PipelineBase[R]":
        pass

    def flat_map(self, selector: Callable[[T], Iterable[R]]) -> "PipelineBase[R]":
        return self.select_many(selector)

    @abstractmethod
    def take(self, count: int) -> "PipelineBase[T]":
        pass

    @abstractmethod
    def skip(self, count: int) -> "PipelineBase[T]":
        pass

    @abstractmethod
    def distinct(self) -> "PipelineBase[T]":
        pass

    @abstractmethod
    def order_by(self, key: Callable[[T], Any]) -> "PipelineBase[T]":
        pass

    @abstractmethod
    def order_by_descending(self, key: Callable[[T], Any]) -> "PipelineBase[T]":
        pass

    @abstractmethod
    def apply(self, stage: Callable[[Iterable[T]], Iterable[R]]) -> "PipelineBase[R]":
        """Append a whole-stream stage (iterable in, iterable out)."""

    def batch(self, size: int) -> "PipelineBase[List[T]]":
        """Group consecutive elements into lists of at most ``size``."""
        if isinstance(size, bool) or not isinstance(size, int) or size <= 0:
            raise ArgumentError("batch size must be greater than zero")

        def _batch(items: Iterable[T]) -> Iterator[List[T]]:
            chunk: List[T] = []
            for item in items:
                chunk.append(item)
                if len(chunk) == size:
                    yield chunk
                    chunk = []
            if chunk:
                yield chunk

        return self.apply(_batch)

    def parallel(self, max_workers: Optional[int] = None) -> "PipelineBase[T]":
        from pipeflow.core.parallel import ParallelPipeline
        return ParallelPipeline(self, max_workers=max_workers)

    @abstractmethod
    def sequential(self) -> "PipelineBase[T]":
        pass

    # Terminal operations --------------------------------------------------

    @abstractmethod
    def execute(self) -> Iterator[T]:
        pass

    def __iter__(self) -> Iterator[T]:
        return iter(self.execute())

    async def execute_async(self) -> List[T]:
        """Run the chain on a worker thread and return the materialised result."""
        return await asyncio.to_thread(self.to_list)

    @abstractmethod
    def for_each(
        self,
        action: Callable[[T], Any],
        cancel: Optional[threading.Event] = None,
    ) -> None:
        pass

    @abstractmethod
    async def for_each_async(
        self,
        action: Callable[[T], Union[Any, Awaitable[Any]]],
        cancel: Optional[threading.Event] = None,
    ) -> None:
        pass

    def to_list(self) -> List[T]:
        return list(self.execute())

    def to_array(self) -> Tuple[T, ...]:
        return tuple(self.execute())

    def first(self) -> T:
        for item in self.execute():
            return item
        raise EmptyError("pipeline produced no elements")

    def first_or_default(self, default: Optional[T] = None) -> Optional[T]:
        for item in self.execute():
            return item
        return default

    def count(self) -> int:
        return sum(1 for _ in self.execute())

    # Row operations -------------------------------------------------------

    def remove_duplicates(self, key_field: str) -> "PipelineBase[Row]":
        from pipeflow.core import extensions
        return extensions.remove_duplicates(self, key_field)

    def fill_missing(self, field: str, default: Any) -> "PipelineBase[Row]":
        from pipeflow.core import extensions
        return extensions.fill_missing(self, field, default)

    def add_column(self, name: str, compute: Callable[[Row], Any]) -> "PipelineBase[Row]":
        from pipeflow.core import extensions
        return extensions.add_column(self, name, compute)

    def remove_column(self, name: str) -> "PipelineBase[Row]":
        from pipeflow.core import extensions
        return extensions.remove_column(self, name)

    def rename_column(self, old: str, new: str) -> "PipelineBase[Row]":
        from pipeflow.core import extensions
        return extensions.rename_column(self, old, new)

    def group_by(self, key_field: str, aggregations=None, **named) -> "PipelineBase[Row]":
        from pipeflow.core import extensions
        return extensions.group_by(self, key_field, aggregations, **named)

    def group_by_key(self, key: Callable[[T], K]) -> "PipelineBase[Any]":
        from pipeflow.core import extensions
        return extensions.group_by_key(self, key)

    def validate(self, schema, on_error: str = "skip") -> "PipelineBase[Row]":
        from pipeflow.core import extensions
        return extensions.validate(self, schema, on_error=on_error)

    # Sinks ----------------------------------------------------------------

    def write(self, sink: DataSink) -> int:
        """Stream the result into a DataSink; returns rows written."""
        if not isinstance(sink, DataSink):
            raise ArgumentError("sink must be a DataSink instance")
        return sink.write(self.execute())

    def to_csv(self, filepath: str, **kwargs) -> int:
        from pipeflow.components.writers import CSVWriter
        return self.write(CSVWriter(filepath, **kwargs))

    def to_json(self, filepath: str, **kwargs) -> int:
        from pipeflow.components.writers import JSONWriter
        return self.write(JSONWriter(filepath, **kwargs))

    def to_sql(self, connection_string: str, table_name: str, **kwargs) -> int:
        from pipeflow.components.writers import SQLWriter
        return self.write(SQLWriter(connection_string, table_name, **kwargs))

    def to_parquet(self, filepath: str, **kwargs) -> int:
        from pipeflow.components.writers import ParquetWriter
        return self.write(ParquetWriter(filepath, **kwargs))

    def to_excel(self, filepath: str, **kwargs) -> int:
        from pipeflow.components.writers import ExcelWriter
        return self.write(ExcelWriter(filepath, **kwargs))

    def to_api(self, url: str, **kwargs) -> int:
        from pipeflow.components.writers import APIWriter
        return self.write(APIWriter(url, **kwargs))
