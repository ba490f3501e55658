"""
Row-level operators built on top of the pipeline contract.

Every operator returns a new pipeline; none of them mutates the rows of the
upstream source (map-style operators work on copies), so a pipeline stays
safe to re-execute and to share between branches.
"""

from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    NamedTuple,
    Optional,
    Tuple,
    Union,
)
import logging

from pipeflow.core.base import PipelineBase, require_callable
from pipeflow.core.errors import ArgumentError, ValidationError
from pipeflow.core.row import MISSING, Row, freeze_value

logger = logging.getLogger(__name__)

Aggregation = Union[str, Callable[[List[Row]], Any], Tuple[str, str]]


class Group(NamedTuple):
    key: Any
    rows: List[Any]


def as_row(item: Any) -> Row:
    if isinstance(item, Row):
        return item
    if isinstance(item, Mapping):
        return Row(item)
    raise TypeError(f"expected a Row or mapping, got {type(item).__name__}")


def _require_pipeline(pipeline: Any) -> None:
    if not isinstance(pipeline, PipelineBase):
        raise ArgumentError("pipeline must be a Pipeline instance")


def _require_name(value: Any, name: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ArgumentError(f"{name} must be a non-empty string")


def _present(values: Iterable[Any]) -> List[Any]:
    return [v for v in values if v is not None and v is not MISSING]


def _mean(values: List[Any]) -> Optional[float]:
    return sum(values) / len(values) if values else None


AGGREGATORS: Dict[str, Callable[[List[Any]], Any]] = {
    "sum": lambda values: sum(values),
    "mean": _mean,
    "avg": _mean,
    "min": lambda values: min(values) if values else None,
    "max": lambda values: max(values) if values else None,
    "count": len,
    "first": lambda values: values[0] if values else None,
    "last": lambda values: values[-1] if values else None,
    "list": list,
}


def resolve_aggregation(name: str, spec: Aggregation) -> Callable[[List[Row]], Any]:
    """
    Turn an aggregation spec into a callable over a group's rows.

    Accepted forms: a callable, the string "count", or a (field, func) pair
    where func is one of AGGREGATORS.
    """
    if callable(spec):
        return spec
    if spec == "count":
        return len
    if isinstance(spec, (tuple, list)) and len(spec) == 2:
        field, func_name = spec
        func = AGGREGATORS.get(str(func_name).lower())
        if func is None:
            raise ArgumentError(f"Unknown aggregation '{func_name}' for '{name}'")
        return lambda rows: func(_present(row.get(field) for row in rows))
    raise ArgumentError(f"Invalid aggregation for '{name}': {spec!r}")


def remove_duplicates(pipeline: PipelineBase, key_field: str) -> PipelineBase[Row]:
    """Keep the first row seen for each value of ``key_field``."""
    _require_pipeline(pipeline)
    _require_name(key_field, "key_field")

    def _dedupe(rows: Iterable[Any]) -> Iterator[Row]:
        seen = set()
        for row in map(as_row, rows):
            key = freeze_value(row.get(key_field, None))
            if key in seen:
                continue
            seen.add(key)
            yield row

    return pipeline.apply(_dedupe)


def fill_missing(pipeline: PipelineBase, field: str, default: Any) -> PipelineBase[Row]:
    """Set ``field`` to ``default`` where it is absent or None."""
    _require_pipeline(pipeline)
    _require_name(field, "field")

    def _fill(item: Any) -> Row:
        row = as_row(item)
        if row.get(field, None) is not None:
            return row
        filled = row.copy()
        filled.set(field, default)
        return filled

    return pipeline.map(_fill)


def add_column(
    pipeline: PipelineBase,
    name: str,
    compute: Callable[[Row], Any],
) -> PipelineBase[Row]:
    """Add (or overwrite) ``name`` with ``compute(row)``."""
    _require_pipeline(pipeline)
    _require_name(name, "name")
    require_callable(compute, "compute")

    def _add(item: Any) -> Row:
        row = as_row(item)
        value = compute(row)
        extended = row.copy()
        extended.set(name, value)
        return extended

    return pipeline.map(_add)


def remove_column(pipeline: PipelineBase, name: str) -> PipelineBase[Row]:
    _require_pipeline(pipeline)
    _require_name(name, "name")

    def _remove(item: Any) -> Row:
        trimmed = as_row(item).copy()
        trimmed.remove(name)
        return trimmed

    return pipeline.map(_remove)


def rename_column(pipeline: PipelineBase, old: str, new: str) -> PipelineBase[Row]:
    """Rename ``old`` to ``new``; an existing ``new`` field is overwritten."""
    _require_pipeline(pipeline)
    _require_name(old, "old")
    _require_name(new, "new")
    return pipeline.map(lambda item: as_row(item).rename(old, new))


def group_by(
    pipeline: PipelineBase,
    key_field: str,
    aggregations: Optional[Union[Mapping[str, Aggregation], Iterable[Tuple[str, Aggregation]]]] = None,
    **named: Aggregation,
) -> PipelineBase[Row]:
    """
    Group rows by the raw value of ``key_field`` and aggregate each group.

    Produces one row per distinct key, in order of first appearance:
    ``{key_field: key, <name>: <aggregation(rows)>, ...}``.

    Example:
        pipeline.group_by(
            "department",
            {"headcount": "count", "top_salary": ("salary", "max")},
            average=lambda rows: sum(r.get_typed("salary", float) for r in rows) / len(rows),
        )
    """
    _require_pipeline(pipeline)
    _require_name(key_field, "key_field")

    if aggregations is None:
        pairs: List[Tuple[str, Aggregation]] = []
    elif isinstance(aggregations, Mapping):
        pairs = list(aggregations.items())
    else:
        pairs = list(aggregations)
    pairs.extend(named.items())

    resolved = [(name, resolve_aggregation(name, spec)) for name, spec in pairs]

    def _group(rows: Iterable[Any]) -> Iterator[Row]:
        groups: Dict[Any, Tuple[Any, List[Row]]] = {}
        for row in map(as_row, rows):
            value = row.get(key_field, None)
            groups.setdefault(freeze_value(value), (value, []))[1].append(row)

        for value, members in groups.values():
            result = Row()
            result.set(key_field, value)
            for name, aggregate in resolved:
                result.set(name, aggregate(members))
            yield result

    return pipeline.apply(_group)


def group_by_key(pipeline: PipelineBase, key: Callable[[Any], Any]) -> PipelineBase[Group]:
    """Group elements by ``key(element)``; yields Group(key, rows) in encounter order."""
    _require_pipeline(pipeline)
    require_callable(key, "key")

    def _group(items: Iterable[Any]) -> Iterator[Group]:
        groups: Dict[Any, Group] = {}
        for item in items:
            value = key(item)
            frozen = freeze_value(value)
            if frozen not in groups:
                groups[frozen] = Group(value, [])
            groups[frozen].rows.append(item)
        yield from groups.values()

    return pipeline.apply(_group)


VALIDATION_MODES = ("skip", "raise", "log", "fix")


def validate(pipeline: PipelineBase, schema, on_error: str = "skip") -> PipelineBase[Row]:
    """
    Check every row against ``schema``.

    Args:
        on_error: 'skip' drops invalid rows, 'raise' raises ValidationError,
            'log' keeps them with a warning, 'fix' keeps them with values
            coerced to the schema types and defaults applied.
    """
    from pipeflow.core.schema import Schema, SchemaValidator

    _require_pipeline(pipeline)
    if isinstance(schema, Mapping):
        schema = Schema.from_dict(schema)
    if not isinstance(schema, Schema):
        raise ArgumentError("schema must be a Schema or a schema dictionary")
    if on_error not in VALIDATION_MODES:
        raise ArgumentError(f"on_error must be one of {VALIDATION_MODES}, got '{on_error}'")

    validator = SchemaValidator(schema, coerce=on_error == "fix")

    def _validate(rows: Iterable[Any]) -> Iterator[Row]:
        for index, row in enumerate(map(as_row, rows)):
            if on_error == "fix":
                yield validator.coerce_row(row)
                continue
            result = validator.check(row)
            if result.valid:
                yield row
                continue

            if on_error == "raise":
                raise ValidationError(result.errors)
            if on_error == "log":
                logger.warning(f"Row {index} failed validation: {'; '.join(result.errors)}")
                yield row
            else:
                logger.debug(f"Skipping invalid row {index}: {'; '.join(result.errors)}")

    return pipeline.apply(_validate)
