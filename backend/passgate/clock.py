"""UTC time helpers shared by models and services."""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value: datetime) -> str:
    """Render a timestamp as fixed-width ISO-8601 UTC.

    Stored timestamps always carry microseconds so string comparison in SQL
    orders them the same way datetime comparison does.
    """
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="microseconds")
