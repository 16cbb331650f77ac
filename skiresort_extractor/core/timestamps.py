"""ISO-8601 timestamp helpers.

All timestamps written by the extractor are UTC with millisecond precision,
e.g. "2025-01-15T08:30:00.000Z".
"""

from datetime import datetime, timezone

from skiresort_extractor.errors import InvalidInputError


def format_iso(moment: datetime) -> str:
    """Format an aware datetime as UTC ISO-8601 with milliseconds and 'Z'."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def utc_now_iso() -> str:
    """Current wall-clock time as an ISO-8601 UTC string."""
    return format_iso(datetime.now(timezone.utc))


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 value; naive values are taken as UTC.

    Raises:
        ValueError: If the value is not ISO-8601 compatible.
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def normalize_timestamp(value: str) -> str:
    """Normalize an ISO-8601 compatible value to UTC with milliseconds.

    Raises:
        InvalidInputError: If the value cannot be parsed.
    """
    try:
        return format_iso(parse_iso(value))
    except ValueError as e:
        raise InvalidInputError(f"Invalid generatedAt timestamp '{value}'. Expected ISO-8601 compatible value.") from e


def age_seconds(saved_at: str, now: datetime) -> float | None:
    """Seconds elapsed since saved_at, or None if saved_at is unparseable."""
    try:
        return (now - parse_iso(saved_at)).total_seconds()
    except ValueError:
        return None
