"""Date/time helpers shared by models and services."""
from datetime import date, datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_datetime(value):
    """
    Parse an API date/datetime value into a naive UTC datetime.

    Accepts None, empty strings, date/datetime objects and ISO-8601 strings
    (a trailing 'Z' is understood). Aware values are converted to UTC.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Unsupported date value: {value!r}")

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def isoformat_or_none(value):
    return value.isoformat() if value else None
