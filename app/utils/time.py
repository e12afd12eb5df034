from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp; every stored datetime in the attempt tables is naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
