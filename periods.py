"""Budget period windows.

All windows are half-open ``[start, end)``. Weeks start on Monday.
"""

from datetime import date, datetime, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta, MO

from config import Config

PERIODS = ("daily", "weekly", "monthly")


def period_window(now: datetime, period: str) -> Tuple[datetime, datetime]:
    """Return the window of ``period`` containing ``now``, in ``now``'s own zone."""
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if period == "daily":
        start = start_of_day
        end = start + relativedelta(days=+1)
    elif period == "weekly":
        start = start_of_day + relativedelta(weekday=MO(-1))
        end = start + relativedelta(weeks=+1)
    elif period == "monthly":
        start = start_of_day.replace(day=1)
        end = start + relativedelta(months=+1)
    else:
        raise ValueError(f"Invalid period {period!r}. Allowed values: {PERIODS}")

    return start, end


def owner_zone(tz_name: Optional[str]) -> ZoneInfo:
    return ZoneInfo(tz_name or Config.REFERENCE_TIMEZONE)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def owner_window(
    now: datetime, period: str, tz_name: Optional[str] = None
) -> Tuple[datetime, datetime]:
    """Compute the window in the owner's time zone and return it as naive UTC.

    Naive ``now`` values are taken to be UTC, matching how expense
    timestamps are stored.
    """
    local_now = _as_utc(now).astimezone(owner_zone(tz_name))
    start, end = period_window(local_now, period)
    return (
        start.astimezone(timezone.utc).replace(tzinfo=None),
        end.astimezone(timezone.utc).replace(tzinfo=None),
    )


def owner_today(now: datetime, tz_name: Optional[str] = None) -> date:
    return _as_utc(now).astimezone(owner_zone(tz_name)).date()
