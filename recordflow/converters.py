from collections.abc import Callable
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID


TypeConverter = Callable[[str], Any]

_TRUE_VALUES = {"true", "1", "yes", "y", "on"}
_FALSE_VALUES = {"false", "0", "no", "n", "off"}


def to_str(value: str) -> str:
    return value


def to_int(value: str) -> int:
    return int(value.strip())


def to_float(value: str) -> float:
    return float(value.strip())


def to_decimal(value: str) -> Decimal:
    try:
        return Decimal(value.strip())
    except InvalidOperation as exc:
        raise ValueError(f"invalid decimal: {value!r}") from exc


def to_bool(value: str) -> bool:
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ValueError(f"invalid boolean: {value!r}")


def to_date(value: str) -> date:
    return date.fromisoformat(value.strip())


def to_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value.strip())


def to_time(value: str) -> time:
    return time.fromisoformat(value.strip())


def to_uuid(value: str) -> UUID:
    return UUID(value.strip())


def date_format_converter(date_format: str) -> TypeConverter:
    """Build a ``date`` converter for a fixed ``strptime`` format, e.g. ``%Y/%m/%d``."""

    def convert(value: str) -> date:
        return datetime.strptime(value.strip(), date_format).date()

    return convert


def datetime_format_converter(datetime_format: str) -> TypeConverter:
    def convert(value: str) -> datetime:
        return datetime.strptime(value.strip(), datetime_format)

    return convert


def default_converters() -> dict[type, TypeConverter]:
    return {
        str: to_str,
        int: to_int,
        float: to_float,
        Decimal: to_decimal,
        bool: to_bool,
        date: to_date,
        datetime: to_datetime,
        time: to_time,
        UUID: to_uuid,
    }
