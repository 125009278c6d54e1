"""Cycle boundary arithmetic.

Every component that needs to know where a cycle starts or ends goes through
this module. Cycles are half-open: a moment belongs to the cycle when
start <= moment < end. Dates stored on assignments are plain ISO days, so the
window also exposes its first and last calendar day for inclusive range
filters.
"""

from datetime import UTC, date, datetime, time, timedelta, tzinfo

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, ConfigDict

from src.core.config import Constants
from src.domain.home import RotationPolicy
from src.domain.task import TaskFrequency


BIWEEKLY_SECOND_HALF_DAY = 15


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def start_of_day(moment: datetime) -> datetime:
    """Midnight of the moment's calendar day, keeping its timezone."""
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def as_datetime(day: date, tz: tzinfo = UTC) -> datetime:
    """Midnight of a calendar day as an aware datetime."""
    return datetime.combine(day, time.min, tzinfo=tz)


def cycle_start(policy: RotationPolicy | str, reference: datetime) -> datetime:
    """Return the start of the cycle containing `reference`.

    daily: the same day at 00:00. weekly: the most recent Sunday at 00:00.
    biweekly: the 1st or the 15th of the month. monthly: the 1st of the month.
    """
    policy = RotationPolicy(policy)
    midnight = start_of_day(reference)

    if policy == RotationPolicy.DAILY:
        return midnight
    if policy == RotationPolicy.WEEKLY:
        days_since_sunday = (midnight.weekday() + 1) % 7
        return midnight - timedelta(days=days_since_sunday)
    if policy == RotationPolicy.BIWEEKLY:
        day = 1 if midnight.day < BIWEEKLY_SECOND_HALF_DAY else BIWEEKLY_SECOND_HALF_DAY
        return midnight.replace(day=day)
    return midnight.replace(day=1)


def cycle_end(policy: RotationPolicy | str, start: datetime) -> datetime:
    """Return the exclusive end of the cycle that begins at `start`.

    The second biweekly half runs to the 1st of the next month so that the last
    days of long months still fall inside a cycle.
    """
    policy = RotationPolicy(policy)

    if policy == RotationPolicy.DAILY:
        return start + timedelta(days=1)
    if policy == RotationPolicy.WEEKLY:
        return start + timedelta(days=7)
    if policy == RotationPolicy.BIWEEKLY:
        if start.day < BIWEEKLY_SECOND_HALF_DAY:
            return start + timedelta(days=14)
        return start.replace(day=1) + relativedelta(months=1)
    return start + relativedelta(months=1)


class CycleWindow(BaseModel):
    """A concrete [start, end) cycle for a rotation policy."""

    model_config = ConfigDict(frozen=True)

    policy: RotationPolicy
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end

    @property
    def first_day(self) -> str:
        """First calendar day of the cycle (YYYY-MM-DD)."""
        return self.start.date().isoformat()

    @property
    def last_day(self) -> str:
        """Last calendar day inside the cycle (YYYY-MM-DD), for inclusive filters."""
        return (self.end - timedelta(seconds=1)).date().isoformat()

    def previous(self) -> "CycleWindow":
        """The cycle immediately before this one."""
        return cycle_window(self.policy, self.start - timedelta(seconds=1))

    def next(self) -> "CycleWindow":
        """The cycle immediately after this one."""
        return cycle_window(self.policy, self.end)


def cycle_window(policy: RotationPolicy | str, reference: datetime | None = None) -> CycleWindow:
    """Return the cycle containing `reference` (defaults to now)."""
    reference = reference or utc_now()
    start = cycle_start(policy, reference)
    return CycleWindow(policy=RotationPolicy(policy), start=start, end=cycle_end(policy, start))


def previous_cycle_cutoff(policy: RotationPolicy | str, reference: datetime | None = None) -> str:
    """Last assigned_date (YYYY-MM-DD) that belongs to a cycle before the current one."""
    window = cycle_window(policy, reference)
    return (window.start - timedelta(days=1)).date().isoformat()


def due_date_for(frequency: TaskFrequency | str, assigned: date) -> date:
    """Due date of an assignment handed out on `assigned` for a task of this frequency."""
    frequency = TaskFrequency(frequency)
    if frequency == TaskFrequency.DAILY:
        return assigned + timedelta(days=1)
    if frequency == TaskFrequency.WEEKLY:
        return assigned + timedelta(days=7)
    if frequency == TaskFrequency.BIWEEKLY:
        return assigned + timedelta(days=14)
    return assigned + relativedelta(months=1)


def cycle_length_days(policy: RotationPolicy | str) -> int:
    """Nominal cycle length in days, used to size challenge durations."""
    return Constants.CYCLE_LENGTH_DAYS[RotationPolicy(policy).value]
