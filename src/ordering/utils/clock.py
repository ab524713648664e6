"""Timezone helpers shared by the aggregates and the maintenance sweeps."""

from datetime import UTC, datetime


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, which relational providers hand back."""
    return value if value.tzinfo else value.replace(tzinfo=UTC)
