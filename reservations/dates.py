from datetime import datetime, timezone
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

_datetime_adapter = TypeAdapter(datetime)


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form every stored timestamp uses."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_datetime(value: Any) -> datetime:
    """
    Parse ``value`` (datetime, ISO-8601 string or unix timestamp) into a naive UTC datetime.

    Raises ``ValueError`` when the value is empty or cannot be parsed.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValueError("empty date value")
    if isinstance(value, str):
        value = value.strip()
    try:
        parsed = _datetime_adapter.validate_python(value)
    except PydanticValidationError as exc:
        raise ValueError(f"invalid date value: {value!r}") from exc
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
