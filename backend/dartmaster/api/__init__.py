from datetime import datetime, timezone


def parse_datetime(value):
    """Parse an ISO 8601 string from a request body; naive values are taken as UTC.

    Raises ValueError for anything that is not a parseable string.
    """
    if not isinstance(value, str):
        raise ValueError('expected an ISO 8601 string')
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
