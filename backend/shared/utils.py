from datetime import date, datetime, timezone
from dateutil import parser as date_parser


def parse_timestamp(value: str | datetime | date | None) -> datetime | None:
    """
    Parse a Supabase timestamp or date string into an aware UTC datetime.

    Date-only values (subscription_expiry is stored as YYYY-MM-DD) become
    midnight UTC of that day. Naive values are assumed to be UTC.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        try:
            dt = date_parser.isoparse(value)
        except (ValueError, OverflowError, TypeError):
            try:
                dt = date_parser.parse(value)
            except (ValueError, OverflowError, TypeError):
                return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_now() -> datetime:
    """Default clock."""
    return datetime.now(timezone.utc)


def print_summary(title: str, counts: dict[str, int]) -> None:
    """Print a processing summary block."""
    print(f"\n{'=' * 60}")
    print(f"[{datetime.now()}] {title}")
    print(f"{'=' * 60}")
    for label, value in counts.items():
        print(f"{label + ':':<12}{value}")
    print(f"{'=' * 60}\n")
