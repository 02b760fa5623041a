"""
Fire-time schedules for the long-running scheduler.

A schedule answers one question: given the current wall-clock time, when is
the next run due? CRON_SCHEDULE (five-field cron, e.g. "0 7 * * 1-5" for
weekdays at 07:00) is the normal setup; SCHEDULE_INTERVAL_MINUTES is kept for
simple fixed-period deployments.
"""
from datetime import datetime, timedelta

from croniter import croniter

from config import Config
from errors import ConfigurationError


class CronSchedule:
    """Next fire time from a cron expression, in local wall-clock time."""

    def __init__(self, expression: str) -> None:
        expression = expression.strip()
        if not croniter.is_valid(expression):
            raise ConfigurationError(f"CRON_SCHEDULE is not a valid cron expression: {expression!r}")
        self.expression = expression

    def next_after(self, now: datetime) -> datetime:
        return croniter(self.expression, now).get_next(datetime)

    def __str__(self) -> str:
        return f'cron "{self.expression}"'


class IntervalSchedule:
    """Fires every *minutes* minutes, counted from the previous fire."""

    def __init__(self, minutes: int) -> None:
        if minutes <= 0:
            raise ConfigurationError(f"SCHEDULE_INTERVAL_MINUTES must be > 0 (got {minutes})")
        self.minutes = minutes

    def next_after(self, now: datetime) -> datetime:
        return now + timedelta(minutes=self.minutes)

    def __str__(self) -> str:
        return f"every {self.minutes} min"


def build_schedule(config: Config) -> CronSchedule | IntervalSchedule:
    """
    CRON_SCHEDULE wins over SCHEDULE_INTERVAL_MINUTES. With neither set there
    is nothing to schedule: use `run` from the OS scheduler instead.
    """
    if config.cron_schedule:
        return CronSchedule(config.cron_schedule)
    if config.schedule_interval_minutes is not None:
        return IntervalSchedule(config.schedule_interval_minutes)
    raise ConfigurationError(
        "CRON_SCHEDULE missing. Set it (or SCHEDULE_INTERVAL_MINUTES), "
        "or call `run` from the OS scheduler."
    )
