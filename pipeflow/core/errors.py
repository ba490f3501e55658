"""
Exception types raised by pipelines, rows and parallel stages.
"""

from typing import Any, List, Optional, Sequence


class PipeFlowError(Exception):
    """Base class for all pipeflow errors."""


class ArgumentError(PipeFlowError, ValueError):
    """Invalid argument passed to a chain operation."""


class RangeError(ArgumentError):
    """Count argument out of range (e.g. negative take/skip)."""


class ConversionError(PipeFlowError, TypeError):
    """
    A row field could not be converted to the requested type.

    Args:
        field: Field name that was accessed.
        source_type: Name of the stored value's type.
        target_type: Name of the requested type.
        value: The stored value.
    """

    def __init__(
        self,
        field: str,
        source_type: str,
        target_type: str,
        value: Any = None,
    ):
        self.field = field
        self.source_type = source_type
        self.target_type = target_type
        self.value = value
        super().__init__(
            f"Cannot convert field '{field}' from {source_type} to {target_type}: {value!r}"
        )


class FieldNotFoundError(PipeFlowError, KeyError):
    """Typed access to a field that is not present in the row."""

    def __init__(self, field: str):
        self.field = field
        super().__init__(field)

    def __str__(self) -> str:
        return f"Field not found: '{self.field}'"


class EmptyError(PipeFlowError, LookupError):
    """first() called on a pipeline that produced no elements."""


class OperationCancelled(PipeFlowError):
    """A cancellation signal was observed between elements."""


class AggregateFailure(PipeFlowError):
    """
    One or more workers failed during a parallel stage.

    The whole stage is discarded; no partial result is returned.
    """

    def __init__(self, errors: Sequence[BaseException], stage: str = "parallel stage"):
        self.errors: List[BaseException] = list(errors)
        self.stage = stage
        first = self.first
        detail = f"{type(first).__name__}: {first}" if first is not None else "unknown error"
        super().__init__(
            f"{len(self.errors)} failure(s) in {stage}; first: {detail}"
        )

    @property
    def first(self) -> Optional[BaseException]:
        return self.errors[0] if self.errors else None


class ValidationError(PipeFlowError, ValueError):
    """A row failed schema validation."""

    def __init__(self, errors: Sequence[str]):
        self.errors = list(errors)
        super().__init__(f"Validation failed: {'; '.join(self.errors)}")
