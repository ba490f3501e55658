"""
Lazy, immutable pipeline of deferred stages over a re-iterable source.
"""

from typing import (
    Any,
    Awaitable,
    Callable,
    Iterable,
    Iterator,
    List,
    Optional,
    Tuple,
    TypeVar,
    Union,
)
import asyncio
import inspect
import itertools
import logging
import threading

from pipeflow.core.base import (
    DataSource,
    PipelineBase,
    Stage,
    check_cancelled,
    require_callable,
    require_count,
)
from pipeflow.core.errors import ArgumentError
from pipeflow.core.row import freeze_value

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

SourceFactory = Callable[[], Iterable[Any]]


def as_source_factory(source: Any) -> SourceFactory:
    """
    Normalise a pipeline source into a zero-argument callable.

    DataSources and pipelines are re-read on each call; plain iterables are
    returned as-is, so a one-shot iterator can only be executed once.
    """
    if source is None:
        raise ArgumentError("source must not be None")
    if isinstance(source, DataSource):
        return source.read
    if isinstance(source, PipelineBase):
        return source.execute
    if isinstance(source, (str, bytes)):
        raise ArgumentError("source must be an iterable of elements, not a string")
    if isinstance(source, Iterable):
        return lambda: source
    if callable(source):
        return source
    raise ArgumentError(f"unsupported pipeline source: {type(source).__name__}")


def distinct_items(items: Iterable[T]) -> Iterator[T]:
    """Yield the first occurrence of each structurally distinct element."""
    seen = set()
    unhashable: List[T] = []
    for item in items:
        key = freeze_value(item)
        try:
            if key in seen:
                continue
            seen.add(key)
        except TypeError:
            if any(item == other for other in unhashable):
                continue
            unhashable.append(item)
        yield item


class Pipeline(PipelineBase[T]):
    """
    Deferred chain of transformation stages.

    Each chain call returns a new Pipeline sharing the source and the stage
    prefix; nothing is read until a terminal operation runs, and every
    terminal operation re-runs the full chain.

    Example:
        names = (
            Pipeline(people)
            .filter(lambda p: p["age"] >= 25)
            .order_by(lambda p: p["name"])
            .take(3)
            .map(lambda p: p["name"])
            .to_list()
        )
    """

    def __init__(self, source: Any, _stages: Tuple[Stage, ...] = ()):
        self._source_factory = as_source_factory(source)
        self._stages = tuple(_stages)

    def _then(self, stage: Stage) -> "Pipeline":
        derived = Pipeline.__new__(Pipeline)
        derived._source_factory = self._source_factory
        derived._stages = self._stages + (stage,)
        return derived

    # Chain operations -----------------------------------------------------

    def filter(self, predicate: Callable[[T], bool]) -> "Pipeline[T]":
        require_callable(predicate, "predicate")
        return self._then(lambda items: filter(predicate, items))

    def map(self, selector: Callable[[T], R]) -> "Pipeline[R]":
        require_callable(selector, "selector")
        return self._then(lambda items: map(selector, items))

    def select_many(self, selector: Callable[[T], Iterable[R]]) -> "Pipeline[R]":
        require_callable(selector, "selector")
        return self._then(lambda items: itertools.chain.from_iterable(map(selector, items)))

    def take(self, count: int) -> "Pipeline[T]":
        require_count(count)
        return self._then(lambda items: itertools.islice(items, count))

    def skip(self, count: int) -> "Pipeline[T]":
        require_count(count)
        return self._then(lambda items: itertools.islice(items, count, None))

    def distinct(self) -> "Pipeline[T]":
        return self._then(distinct_items)

    def order_by(self, key: Callable[[T], Any]) -> "Pipeline[T]":
        require_callable(key, "key")
        return self._then(lambda items: sorted(items, key=key))

    def order_by_descending(self, key: Callable[[T], Any]) -> "Pipeline[T]":
        require_callable(key, "key")
        # sorted() stays stable with reverse=True
        return self._then(lambda items: sorted(items, key=key, reverse=True))

    def apply(self, stage: Callable[[Iterable[T]], Iterable[R]]) -> "Pipeline[R]":
        require_callable(stage, "stage")
        return self._then(stage)

    def sequential(self) -> "Pipeline[T]":
        return self

    # Terminal operations --------------------------------------------------

    def execute(self) -> Iterator[T]:
        """Return a fresh lazy iterator over the result of the whole chain."""
        return self._run()

    def _run(self) -> Iterator[T]:
        logger.debug(f"Executing pipeline with {len(self._stages)} stage(s)")
        data: Iterable[Any] = self._source_factory()
        for stage in self._stages:
            data = stage(data)
        yield from data

    def for_each(
        self,
        action: Callable[[T], Any],
        cancel: Optional[threading.Event] = None,
    ) -> None:
        require_callable(action, "action")
        for item in self.execute():
            check_cancelled(cancel)
            action(item)

    async def for_each_async(
        self,
        action: Callable[[T], Union[Any, Awaitable[Any]]],
        cancel: Optional[threading.Event] = None,
    ) -> None:
        require_callable(action, "action")
        items = await asyncio.to_thread(self.to_list)
        for item in items:
            check_cancelled(cancel)
            result = action(item)
            if inspect.isawaitable(result):
                await result

    def __repr__(self) -> str:
        return f"Pipeline(stages={len(self._stages)})"
