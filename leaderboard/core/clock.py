"""Wall-clock helpers.

Timestamps are stored as naive Asia/Seoul local time, which is what the
existing leaderboard data uses.
"""

from datetime import datetime, timedelta, timezone

SEOUL_TZ = timezone(timedelta(hours=9), name="Asia/Seoul")


def seoul_now() -> datetime:
    return datetime.now(SEOUL_TZ).replace(tzinfo=None)


def to_seoul_naive(value: datetime) -> datetime:
    """Convert an aware datetime to naive Seoul time; naive input is assumed Seoul already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(SEOUL_TZ).replace(tzinfo=None)
