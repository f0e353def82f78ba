"""
Custom GraphQL scalars
"""

from datetime import datetime, timezone
from typing import NewType

import strawberry
from strawberry.scalars import JSON


def serialize_date(value: datetime) -> int:
    """Serialize a datetime as integer milliseconds since the epoch (naive values are UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def parse_date(value: object) -> datetime:
    """Parse milliseconds since the epoch or an ISO-8601 string into an aware datetime."""
    if isinstance(value, bool):
        raise ValueError(f"Date cannot represent value: {value!r}")
    if isinstance(value, int | float):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    raise ValueError(f"Date cannot represent value: {value!r}")


Date = strawberry.scalar(
    NewType("Date", datetime),
    name="Date",
    description="Date as milliseconds since the Unix epoch",
    serialize=serialize_date,
    parse_value=parse_date,
)

__all__ = ["Date", "JSON", "parse_date", "serialize_date"]
