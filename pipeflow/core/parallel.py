"""
Parallel execution strategy for pipelines.

Per-element work (filter, map, distinct, for_each) is fanned out over a
bounded thread pool. Results are collected as workers finish, so element
order is not preserved; order-sensitive operations (order_by, take, skip)
hand back to sequential execution.
"""

from concurrent.futures import CancelledError, Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, replace
from typing import (
    Any,
    Awaitable,
    Callable,
    Iterable,
    Iterator,
    List,
    Optional,
    TypeVar,
    Union,
)
import asyncio
import inspect
import logging
import math
import os
import threading

from pipeflow.core.base import (
    PipelineBase,
    check_cancelled,
    require_callable,
)
from pipeflow.core.errors import AggregateFailure, ArgumentError, OperationCancelled
from pipeflow.core.pipeline import Pipeline, distinct_items

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

ChunkWork = Callable[[List[Any], Optional[threading.Event]], List[Any]]


@dataclass
class ParallelConfig:
    """Configuration for parallel processing."""

    workers: Optional[int] = None  # None = os.cpu_count()
    chunk_size: Optional[int] = None  # elements per task; None = spread over ~4 tasks per worker
    ordered: bool = False  # collect chunks in submission order instead of completion order

    def __post_init__(self):
        if self.workers is None:
            self.workers = os.cpu_count() or 1
        if isinstance(self.workers, bool) or not isinstance(self.workers, int) or self.workers < 1:
            raise ArgumentError("workers must be at least 1")
        if self.chunk_size is not None and self.chunk_size < 1:
            raise ArgumentError("chunk_size must be at least 1")


def _guarded(chunk: List[T], cancel: Optional[threading.Event]) -> Iterator[T]:
    for item in chunk:
        check_cancelled(cancel)
        yield item


class ParallelPipeline(PipelineBase[T]):
    """
    Runs per-element stages of a pipeline across a thread pool.

    Args:
        inner: Upstream pipeline, or any source accepted by Pipeline.
        max_workers: Worker bound. None uses the number of CPUs.
        config: Optional ParallelConfig (max_workers overrides config.workers).

    Example:
        totals = (
            Pipeline(rows)
            .parallel(max_workers=8)
            .filter(lambda r: r["amount"] > 0)
            .map(enrich)
            .order_by(lambda r: r["id"])
            .to_list()
        )

    Note: filter/map/distinct return a sequential Pipeline over the collected
    (unordered) results. Apply order_by last when order matters.
    """

    def __init__(
        self,
        inner: Any,
        max_workers: Optional[int] = None,
        config: Optional[ParallelConfig] = None,
    ):
        if inner is None:
            raise ArgumentError("inner pipeline must not be None")
        self._inner: PipelineBase = inner if isinstance(inner, PipelineBase) else Pipeline(inner)

        if max_workers is not None:
            config = replace(config, workers=max_workers) if config else ParallelConfig(workers=max_workers)
        self.config = config or ParallelConfig()

    @property
    def max_workers(self) -> int:
        return self.config.workers

    # Fan-out ----------------------------------------------------------------

    def _fan_out(
        self,
        work: ChunkWork,
        stage: str,
        cancel: Optional[threading.Event] = None,
    ) -> List[Any]:
        """
        Materialise the upstream, run ``work`` over chunks, collect results.

        All-or-nothing: any worker failure discards the whole stage and raises
        AggregateFailure carrying every collected cause.
        """
        items = list(self._inner.execute())
        if not items:
            return []

        size = self.config.chunk_size or max(1, math.ceil(len(items) / (self.config.workers * 4)))
        chunks = [items[i:i + size] for i in range(0, len(items), size)]
        logger.debug(
            f"Parallel {stage}: {len(items)} element(s) in {len(chunks)} chunk(s), "
            f"{self.config.workers} worker(s)"
        )

        if self.config.workers == 1:
            return self._run_inline(work, chunks, stage, cancel)

        results: List[Any] = []
        errors: List[BaseException] = []
        cancelled = False

        with ThreadPoolExecutor(
            max_workers=self.config.workers,
            thread_name_prefix="pipeflow",
        ) as executor:
            futures: List[Future] = [executor.submit(work, chunk, cancel) for chunk in chunks]
            completed = futures if self.config.ordered else as_completed(futures)

            for future in completed:
                try:
                    results.extend(future.result())
                except CancelledError:
                    continue
                except OperationCancelled:
                    cancelled = True
                    self._cancel_pending(futures)
                except Exception as e:
                    errors.append(e)
                    self._cancel_pending(futures)

        if errors:
            logger.error(f"Parallel {stage} failed with {len(errors)} error(s)")
            raise AggregateFailure(errors, stage=stage) from errors[0]
        if cancelled or (cancel is not None and cancel.is_set()):
            raise OperationCancelled(f"{stage} cancelled")
        return results

    @staticmethod
    def _cancel_pending(futures: List[Future]) -> None:
        for future in futures:
            future.cancel()

    @staticmethod
    def _run_inline(
        work: ChunkWork,
        chunks: List[List[Any]],
        stage: str,
        cancel: Optional[threading.Event],
    ) -> List[Any]:
        results: List[Any] = []
        for chunk in chunks:
            try:
                results.extend(work(chunk, cancel))
            except OperationCancelled:
                raise
            except Exception as e:
                raise AggregateFailure([e], stage=stage) from e
        return results

    def _collected(self, work: ChunkWork, stage: str) -> Pipeline:
        return Pipeline(lambda: self._fan_out(work, stage))

    # Chain operations -----------------------------------------------------

    def filter(self, predicate: Callable[[T], bool]) -> Pipeline[T]:
        require_callable(predicate, "predicate")
        return self._collected(
            lambda chunk, cancel: [x for x in _guarded(chunk, cancel) if predicate(x)],
            "filter",
        )

    def map(self, selector: Callable[[T], R]) -> Pipeline[R]:
        require_callable(selector, "selector")
        return self._collected(
            lambda chunk, cancel: [selector(x) for x in _guarded(chunk, cancel)],
            "map",
        )

    def select_many(self, selector: Callable[[T], Iterable[R]]) -> Pipeline[R]:
        require_callable(selector, "selector")
        return self._collected(
            lambda chunk, cancel: [y for x in _guarded(chunk, cancel) for y in selector(x)],
            "select_many",
        )

    def distinct(self) -> Pipeline[T]:
        # Each worker dedupes its chunk; the merge pass removes cross-chunk duplicates.
        partial = self._collected(lambda chunk, cancel: list(distinct_items(chunk)), "distinct")
        return partial.distinct()

    def order_by(self, key: Callable[[T], Any]) -> Pipeline[T]:
        require_callable(key, "key")
        return Pipeline(lambda: sorted(self._inner.execute(), key=key))

    def order_by_descending(self, key: Callable[[T], Any]) -> Pipeline[T]:
        require_callable(key, "key")
        return Pipeline(lambda: sorted(self._inner.execute(), key=key, reverse=True))

    def take(self, count: int) -> PipelineBase[T]:
        return self._inner.take(count)

    def skip(self, count: int) -> PipelineBase[T]:
        return self._inner.skip(count)

    def apply(self, stage: Callable[[Iterable[T]], Iterable[R]]) -> PipelineBase[R]:
        return self._inner.apply(stage)

    def sequential(self) -> PipelineBase[T]:
        return self._inner

    def parallel(self, max_workers: Optional[int] = None) -> "ParallelPipeline[T]":
        if max_workers is None or max_workers == self.config.workers:
            return self
        return ParallelPipeline(self._inner, max_workers=max_workers, config=self.config)

    # Terminal operations --------------------------------------------------

    def execute(self) -> Iterator[T]:
        return self._inner.execute()

    def for_each(
        self,
        action: Callable[[T], Any],
        cancel: Optional[threading.Event] = None,
    ) -> None:
        """
        Apply ``action`` to every element across the worker pool.

        The action runs concurrently and must be thread-safe.
        """
        require_callable(action, "action")

        def _apply(chunk: List[T], cancel: Optional[threading.Event]) -> List[Any]:
            for item in _guarded(chunk, cancel):
                action(item)
            return []

        self._fan_out(_apply, "for_each", cancel)

    async def for_each_async(
        self,
        action: Callable[[T], Union[Any, Awaitable[Any]]],
        cancel: Optional[threading.Event] = None,
    ) -> None:
        """
        Await ``action`` for every element with at most max_workers in flight.

        Coroutine functions run on the event loop; plain callables run on
        worker threads.
        """
        require_callable(action, "action")
        items = await asyncio.to_thread(self.to_list)
        semaphore = asyncio.Semaphore(self.config.workers)
        is_async = inspect.iscoroutinefunction(action)

        async def _run(item: T) -> None:
            async with semaphore:
                check_cancelled(cancel)
                if is_async:
                    await action(item)
                else:
                    result = await asyncio.to_thread(action, item)
                    if inspect.isawaitable(result):
                        await result

        outcomes = await asyncio.gather(*(_run(item) for item in items), return_exceptions=True)
        errors = [o for o in outcomes if isinstance(o, BaseException)]
        failures = [e for e in errors if not isinstance(e, OperationCancelled)]

        if failures:
            raise AggregateFailure(failures, stage="for_each_async") from failures[0]
        if errors:
            raise OperationCancelled("for_each_async cancelled")

    def __repr__(self) -> str:
        return f"ParallelPipeline(workers={self.config.workers}, inner={self._inner!r})"
