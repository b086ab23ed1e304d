from datetime import UTC, datetime


def utc_now() -> datetime:
    """Current UTC time as a naive datetime.

    SQLite drops tzinfo on round-trip, so all persisted timestamps are naive UTC.
    """
    return datetime.now(UTC).replace(tzinfo=None)
