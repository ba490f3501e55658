"""
Schema definition and row validation for pipelines.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Union
import logging

import pandas as pd

from pipeflow.core.errors import ArgumentError, ConversionError, ValidationError
from pipeflow.core.row import MISSING, Row, convert

logger = logging.getLogger(__name__)

DTYPES: Dict[str, type] = {
    "int": int,
    "integer": int,
    "int64": int,
    "int32": int,
    "Int64": int,
    "float": float,
    "double": float,
    "float64": float,
    "float32": float,
    "decimal": Decimal,
    "str": str,
    "string": str,
    "object": object,
    "bool": bool,
    "boolean": bool,
    "datetime": datetime,
    "datetime64[ns]": datetime,
    "date": date,
    "dict": dict,
    "list": list,
}


@dataclass
class ColumnSchema:
    """Schema definition for a single field."""

    name: str
    dtype: str = "object"  # int, float, decimal, str, bool, datetime, date, dict, list, object
    nullable: bool = True
    default: Optional[Any] = None

    def __post_init__(self):
        if self.dtype not in DTYPES:
            normalized = self.dtype.lower()
            if normalized not in DTYPES:
                raise ArgumentError(f"Unknown dtype '{self.dtype}' for column '{self.name}'")
            self.dtype = normalized

    @property
    def python_type(self) -> type:
        return DTYPES[self.dtype]


@dataclass
class Schema:
    """
    Expected shape of the rows flowing through a pipeline.

    Example:
        schema = Schema([
            ColumnSchema("id", "int", nullable=False),
            ColumnSchema("name", "str"),
            ColumnSchema("value", "float", default=0.0),
        ])
    """

    columns: List[ColumnSchema] = field(default_factory=list)
    strict: bool = False  # If True, extra fields make a row invalid

    @classmethod
    def from_dict(cls, schema_dict: Dict[str, Any]) -> "Schema":
        """
        Create Schema from dictionary.

        Example:
            schema = Schema.from_dict({
                "columns": {
                    "id": {"dtype": "int", "nullable": False},
                    "name": "str",
                },
                "strict": True
            })
        """
        columns = []
        for name, col_def in schema_dict.get("columns", {}).items():
            if isinstance(col_def, str):
                columns.append(ColumnSchema(name=name, dtype=col_def))
            else:
                columns.append(ColumnSchema(
                    name=name,
                    dtype=col_def.get("dtype", "object"),
                    nullable=col_def.get("nullable", True),
                    default=col_def.get("default"),
                ))
        return cls(columns=columns, strict=schema_dict.get("strict", False))

    @classmethod
    def infer(cls, rows: Union[Iterable[Row], pd.DataFrame]) -> "Schema":
        """Infer a schema from sample rows (or a DataFrame)."""
        if isinstance(rows, pd.DataFrame):
            rows = [Row(record) for record in rows.to_dict(orient="records")]

        order: List[str] = []
        seen_types: Dict[str, set] = {}
        nullable: Dict[str, bool] = {}
        for row in rows:
            for name, value in row.items():
                key = name.casefold()
                if key not in seen_types:
                    order.append(name)
                    seen_types[key] = set()
                    nullable[key] = False
                if value is None:
                    nullable[key] = True
                else:
                    seen_types[key].add(type(value))

        columns = []
        for name in order:
            key = name.casefold()
            columns.append(ColumnSchema(
                name=name,
                dtype=_dtype_for(seen_types[key]),
                nullable=nullable[key],
            ))
        return cls(columns=columns)

    def get_column(self, name: str) -> Optional[ColumnSchema]:
        """Get column schema by name (case-insensitive)."""
        key = name.casefold()
        for col in self.columns:
            if col.name.casefold() == key:
                return col
        return None

    @property
    def column_names(self) -> List[str]:
        return [col.name for col in self.columns]


def _dtype_for(types: set) -> str:
    if not types:
        return "object"
    if len(types) == 1:
        only = next(iter(types))
        for name in ("bool", "int", "float", "decimal", "str", "datetime", "date", "dict", "list"):
            if DTYPES[name] is only:
                return name
        return "object"
    if types <= {int, float}:
        return "float"
    return "object"


@dataclass
class ValidationResult:
    """Result of validating one row."""

    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.valid

    def raise_if_invalid(self) -> None:
        if not self.valid:
            raise ValidationError(self.errors)


class SchemaValidator:
    """
    Validates rows against a schema.

    Example:
        validator = SchemaValidator(schema, coerce=True)
        result = validator.check(row)
        fixed = validator.coerce_row(row)
    """

    def __init__(self, schema: Schema, coerce: bool = False):
        if not isinstance(schema, Schema):
            raise ArgumentError("schema must be a Schema instance")
        self.schema = schema
        self.coerce = coerce

    def check(self, row: Row) -> ValidationResult:
        errors: List[str] = []
        warnings: List[str] = []

        for col in self.schema.columns:
            value = row.get(col.name)

            if value is MISSING:
                if col.default is not None or col.nullable:
                    warnings.append(f"Missing field '{col.name}' (has default/nullable)")
                else:
                    errors.append(f"Missing required field '{col.name}'")
                continue

            if value is None:
                if not col.nullable and col.default is None:
                    errors.append(f"Field '{col.name}' is null but not nullable")
                continue

            target = col.python_type
            if target is object or _is_instance(value, target):
                continue
            try:
                convert(value, target, field=col.name)
            except ConversionError as e:
                errors.append(str(e))
            else:
                if not self.coerce:
                    warnings.append(
                        f"Field '{col.name}' is {type(value).__name__}, expected '{col.dtype}'"
                    )

        if self.schema.strict:
            expected = {name.casefold() for name in self.schema.column_names}
            extra = [name for name in row.field_names() if name.casefold() not in expected]
            if extra:
                errors.append(f"Unexpected fields in strict mode: {extra}")

        return ValidationResult(valid=len(errors) == 0, errors=errors, warnings=warnings)

    def coerce_row(self, row: Row) -> Row:
        """Return a copy of ``row`` with schema types and defaults applied."""
        fixed = row.copy()

        for col in self.schema.columns:
            value = fixed.get(col.name)
            if value is MISSING or value is None:
                if col.default is not None or col.nullable or value is None:
                    fixed.set(col.name, col.default)
                continue

            try:
                fixed.set(col.name, convert(value, col.python_type, field=col.name))
            except ConversionError as e:
                logger.warning(f"Failed to coerce field '{col.name}': {e}")
                fixed.set(col.name, col.default)

        if self.schema.strict:
            expected = {name.casefold() for name in self.schema.column_names}
            for name in row.field_names():
                if name.casefold() not in expected:
                    fixed.remove(name)

        return fixed


def _is_instance(value: Any, target: type) -> bool:
    # bool is an int subclass; keep the two apart
    if target is int:
        return isinstance(value, int) and not isinstance(value, bool)
    if target is date:
        return isinstance(value, date) and not isinstance(value, datetime)
    return isinstance(value, target)
