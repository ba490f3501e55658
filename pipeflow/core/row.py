"""
Row: an ordered record of named fields with case-insensitive access.

Values stored in a row are normalised to a small set of Python types
(None, str, int, float, bool, Decimal, datetime, date, dict, list) so that
typed access can go through a single conversion table.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Tuple,
    Type,
    TypeVar,
    Union,
)
import math

import numpy as np
import pandas as pd

from pipeflow.core.errors import ConversionError, FieldNotFoundError

T = TypeVar("T")


class _Missing:
    """Sentinel for a field that is not present (as opposed to present and None)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()

_TRUE_STRINGS = {"true", "yes", "y", "1", "on"}
_FALSE_STRINGS = {"false", "no", "n", "0", "off"}
_RELATIVE_DATES = {"now", "today", "tomorrow", "yesterday"}


def normalize_value(value: Any) -> Any:
    """Map numpy/pandas scalars and containers onto plain Python values."""
    if value is None:
        return None
    # np.float64 subclasses float, so numpy goes first
    if isinstance(value, np.generic):
        if isinstance(value, np.datetime64):
            return None if np.isnat(value) else pd.Timestamp(value).to_pydatetime()
        return normalize_value(value.item())
    if isinstance(value, (str, bool, int, Decimal)):
        return value
    if isinstance(value, float):
        return None if math.isnan(value) else value
    if value is pd.NaT:
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, (datetime, date)):
        return value
    if isinstance(value, Row):
        return value.to_mapping()
    if isinstance(value, Mapping):
        return {str(k): normalize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, np.ndarray)):
        return [normalize_value(v) for v in value]
    return value


def infer_value(text: Optional[str]) -> Any:
    """
    Best-effort typing of a text cell.

    Order: empty -> None, int, float, bool, ISO-8601 timestamp, string.
    """
    if text is None:
        return None
    stripped = text.strip()
    if not stripped:
        return None

    # int() and float() accept "1_000"; a cell like that stays text
    if "_" not in stripped:
        try:
            return int(stripped)
        except ValueError:
            pass

        try:
            number = float(stripped)
            if not math.isnan(number) and not math.isinf(number):
                return number
        except ValueError:
            pass

    lowered = stripped.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False

    if len(stripped) >= 10 and stripped[4] == "-":
        try:
            return datetime.fromisoformat(stripped)
        except ValueError:
            pass

    return text


def freeze_value(value: Any) -> Any:
    """Hashable structural key for a value (rows, dicts and lists by content)."""
    if isinstance(value, Row):
        return frozenset((k, freeze_value(v)) for k, (_, v) in value._fields.items())
    if isinstance(value, Mapping):
        return frozenset((k, freeze_value(v)) for k, v in value.items())
    if isinstance(value, (list, tuple)):
        return tuple(freeze_value(v) for v in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(freeze_value(v) for v in value)
    return value


# Conversion table ---------------------------------------------------------

def _reject_separators(text: str) -> None:
    if "_" in text:
        raise ValueError(f"digit separators not accepted: {text!r}")


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError("non-integral number")
        return int(value)
    if isinstance(value, Decimal):
        if value != value.to_integral_value():
            raise ValueError("non-integral number")
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        _reject_separators(text)
        try:
            return int(text)
        except ValueError:
            number = float(text)
            if not number.is_integer():
                raise
            return int(number)
    raise TypeError


def _to_float(value: Any) -> float:
    if isinstance(value, (bool, int, float, Decimal)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        _reject_separators(text)
        return float(text)
    raise TypeError


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, (int, float, str)):
        try:
            return Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValueError(str(e)) from e
    raise TypeError


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        if value in (0, 1):
            return bool(value)
        raise ValueError("only 0 and 1 convert to bool")
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
        raise ValueError(f"not a boolean string: {value!r}")
    raise TypeError


def _to_str(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        text = value.strip()
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            pass
        # pandas would read these relative to the current clock
        if text.lower() in _RELATIVE_DATES:
            raise ValueError(f"relative date not accepted: {value!r}")
        parsed = pd.to_datetime(text, errors="raise")
        if pd.isna(parsed):
            raise ValueError(f"not a timestamp: {value!r}")
        return parsed.to_pydatetime()
    raise TypeError


def _to_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return _to_datetime(value).date()


def _to_dict(value: Any) -> dict:
    if isinstance(value, Mapping):
        return dict(value)
    raise TypeError


def _to_list(value: Any) -> list:
    if isinstance(value, (list, tuple)):
        return list(value)
    raise TypeError


CONVERTERS: Dict[type, Callable[[Any], Any]] = {
    int: _to_int,
    float: _to_float,
    Decimal: _to_decimal,
    bool: _to_bool,
    str: _to_str,
    datetime: _to_datetime,
    date: _to_date,
    dict: _to_dict,
    list: _to_list,
    object: lambda value: value,
}


def convert(value: Any, target: Type[T], field: str = "<value>") -> T:
    """Convert a stored value to ``target`` or raise ConversionError."""
    if value is None:
        return None
    if target is object:
        return value
    converter = CONVERTERS.get(target)
    if converter is None:
        target_name = getattr(target, "__name__", str(target))
        raise ConversionError(field, type(value).__name__, target_name, value)
    try:
        return converter(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise ConversionError(field, type(value).__name__, target.__name__, value) from e


class Row:
    """
    Ordered mapping of field name to value. Names compare case-insensitively.

    Example:
        row = Row({"Name": "Ada", "Age": "36"})
        row["name"]                 # 'Ada'
        row.get_typed("AGE", int)   # 36
        row.get("email")            # MISSING
    """

    __slots__ = ("_fields",)
    __hash__ = None  # mutable

    def __init__(
        self,
        data: Optional[Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]] = None,
        **fields: Any,
    ):
        # lower-cased name -> (original name, value); dict keeps insertion order
        self._fields: Dict[str, Tuple[str, Any]] = {}
        if data is not None:
            pairs = data.items() if isinstance(data, (Mapping, Row)) else data
            for name, value in pairs:
                self.set(name, value)
        for name, value in fields.items():
            self.set(name, value)

    @classmethod
    def _key(cls, name: str) -> str:
        if not isinstance(name, str):
            raise TypeError(f"field names must be strings, got {type(name).__name__}")
        return name.casefold()

    # Accessors --------------------------------------------------------------

    def get(self, name: str, default: Any = MISSING) -> Any:
        """Return the value for ``name`` or ``default`` (MISSING) if absent."""
        entry = self._fields.get(self._key(name))
        return default if entry is None else entry[1]

    def get_typed(self, name: str, target: Type[T]) -> T:
        """Return the field converted to ``target``."""
        entry = self._fields.get(self._key(name))
        if entry is None:
            raise FieldNotFoundError(name)
        return convert(entry[1], target, field=entry[0])

    def try_get_typed(
        self,
        name: str,
        target: Type[T],
        default: Optional[T] = None,
    ) -> Tuple[Optional[T], bool]:
        """Non-raising variant of get_typed; returns (value, found_and_converted)."""
        try:
            return self.get_typed(name, target), True
        except (FieldNotFoundError, ConversionError):
            return default, False

    def set(self, name: str, value: Any) -> None:
        key = self._key(name)
        existing = self._fields.get(key)
        display = existing[0] if existing is not None else name
        self._fields[key] = (display, normalize_value(value))

    def contains(self, name: str) -> bool:
        return self._key(name) in self._fields

    def field_names(self) -> List[str]:
        return [display for display, _ in self._fields.values()]

    def to_mapping(self) -> Dict[str, Any]:
        """Snapshot copy as a plain dict keyed by original field names."""
        return {display: value for display, value in self._fields.values()}

    # Convenience ------------------------------------------------------------

    def remove(self, name: str) -> bool:
        """Remove a field; returns False if it was not present."""
        return self._fields.pop(self._key(name), None) is not None

    def rename(self, old: str, new: str) -> "Row":
        """Return a copy with ``old`` renamed to ``new`` (overwrites ``new``)."""
        old_key = self._key(old)
        new_key = self._key(new)
        renamed = Row()
        for key, (display, value) in self._fields.items():
            if key == old_key:
                renamed._fields.pop(new_key, None)
                renamed._fields[new_key] = (new, value)
            elif key == new_key and old_key in self._fields:
                continue
            else:
                renamed._fields[key] = (display, value)
        return renamed

    def copy(self) -> "Row":
        clone = Row()
        clone._fields = dict(self._fields)
        return clone

    def items(self) -> List[Tuple[str, Any]]:
        return list(self._fields.values())

    def values(self) -> List[Any]:
        return [value for _, value in self._fields.values()]

    def __getitem__(self, name: Union[str, int]) -> Any:
        if isinstance(name, int) and not isinstance(name, bool):
            return list(self._fields.values())[name][1]
        entry = self._fields.get(self._key(name))
        if entry is None:
            raise KeyError(name)
        return entry[1]

    def __setitem__(self, name: str, value: Any) -> None:
        self.set(name, value)

    def __delitem__(self, name: str) -> None:
        if not self.remove(name):
            raise KeyError(name)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.contains(name)

    def __len__(self) -> int:
        return len(self._fields)

    def __iter__(self) -> Iterator[str]:
        return iter(self.field_names())

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Row):
            return {k: v for k, (_, v) in self._fields.items()} == {
                k: v for k, (_, v) in other._fields.items()
            }
        if isinstance(other, Mapping):
            return self == Row(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"Row({self.to_mapping()!r})"
