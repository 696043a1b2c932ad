from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Iterable, List, Sequence, Tuple, TypeVar

T = TypeVar("T")

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    """Current UTC time truncated to the millisecond precision used in storage."""
    return normalize_datetime(datetime.now(timezone.utc))


def normalize_datetime(value: datetime) -> datetime:
    """
    Coerce a datetime to aware UTC with millisecond precision.

    Naive datetimes are assumed to already be in UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def to_epoch_millis(value: datetime) -> int:
    delta = normalize_datetime(value) - EPOCH
    return (delta.days * 86400 + delta.seconds) * 1000 + delta.microseconds // 1000


def from_epoch_millis(millis: int) -> datetime:
    return EPOCH + timedelta(milliseconds=int(millis))


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """Split `items` into consecutive lists of at most `size` elements."""
    if size <= 0:
        raise ValueError(f"Chunk size must be positive, got {size}")
    items = list(items)
    return [items[i : i + size] for i in range(0, len(items), size)]


def placeholders(count: int) -> str:
    """Positional placeholder list for an IN (...) clause."""
    if count <= 0:
        raise ValueError("An IN clause needs at least one placeholder")
    return ", ".join(["?"] * count)


def bind_value(value: Any) -> Any:
    """
    Convert a Python value to a scalar SQLite can bind positionally.

    bool becomes 0/1, Enum members their value, datetimes epoch millis.
    Anything not natively supported is bound as its string form.
    """
    if isinstance(value, Enum):
        return bind_value(value.value)
    if value is None or isinstance(value, (str, bytes)):
        return value
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, datetime):
        return to_epoch_millis(value)
    return str(value)


def bind_params(params: Iterable[Any]) -> Tuple[Any, ...]:
    if params is None:
        return ()
    if isinstance(params, (str, bytes)):
        raise TypeError("Parameters must be a sequence of values, not a single string")
    return tuple(bind_value(p) for p in params)
