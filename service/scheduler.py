import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from core.exceptions import SchedulingError
from core.logging_config import LoggerMixin
from core.scheduler_interface import IScheduler

# Cron descriptors understood in addition to plain crontab lines.
DESCRIPTORS = {
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
    "@monthly": "0 0 1 * *",
    "@weekly": "0 0 * * 0",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@hourly": "0 * * * *",
}

EVERY_PATTERN = re.compile(r"^@every\s+(\d+)\s*([smhd])$", re.IGNORECASE)
EVERY_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}

# Cron numbers weekdays from Sunday (0 and 7); APScheduler 3 numbers them from Monday
WEEKDAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun")
NUMERIC_WEEKDAYS = re.compile(r"^(\*|\d+(?:-\d+)?)(?:/(\d+))?$")

def _cron_weekdays(field: str) -> str:
    """Rewrites a cron day-of-week field with day names so numbers keep their cron meaning."""
    if field in ("*", "?"):
        return "*"

    days = []
    for part in field.split(","):
        match = NUMERIC_WEEKDAYS.match(part)
        if match is None:
            # Named days already mean the same thing to both
            days.append(part)
            continue
        expr, step = match.group(1), int(match.group(2) or 1)
        if expr == "*":
            first, last = 0, 6
        else:
            first, _, last = expr.partition("-")
            first = int(first)
            last = int(last) if last else (6 if match.group(2) else first)
        if step <= 0 or first > last or last > 7:
            raise ValueError(f"invalid day of week '{part}'")
        days.extend(WEEKDAY_NAMES[day] for day in range(first, last + 1, step))

    days = list(dict.fromkeys(days))
    if set(days) >= set(WEEKDAY_NAMES):
        return "*"
    return ",".join(days)

def build_trigger(cadence: str, timezone: str = "UTC") -> BaseTrigger:
    """
    Turns a cadence expression into an APScheduler trigger.

    Accepts ``@every <n><s|m|h|d>``, the ``@daily`` family of descriptors,
    5-field crontab lines and 6-field lines with a leading seconds field.

    Raises:
        ValueError: If the expression cannot be parsed.
    """
    if not isinstance(cadence, str) or not cadence.strip():
        raise ValueError("cadence must be a non-empty string")
    expression = cadence.strip()

    match = EVERY_PATTERN.match(expression)
    if match:
        amount = int(match.group(1))
        if amount <= 0:
            raise ValueError("interval must be positive")
        unit = EVERY_UNITS[match.group(2).lower()]
        return IntervalTrigger(timezone=timezone, **{unit: amount})

    expression = DESCRIPTORS.get(expression.lower(), expression)
    if expression.startswith("@"):
        raise ValueError(f"unknown descriptor '{expression}'")

    fields = expression.split()
    if len(fields) == 5:
        fields.insert(0, "0")
    if len(fields) != 6:
        raise ValueError(f"expected 5 or 6 fields, got {len(fields)}")
    second, minute, hour, day, month, day_of_week = fields
    return CronTrigger(
        second=second,
        minute=minute,
        hour=hour,
        day="*" if day == "?" else day,
        month=month,
        day_of_week=_cron_weekdays(day_of_week),
        timezone=timezone
    )

@dataclass
class Task:
    """A named callback fired on a cadence."""
    name: str
    cadence: str
    run: Callable[[], object]

class TaskScheduler(IScheduler, LoggerMixin):
    """
    Fires registered tasks from a background thread pool.

    Tasks may run concurrently with each other; a single task never overlaps
    with itself (APScheduler's default of one running instance per job).
    """

    def __init__(self, timezone: str = "UTC", scheduler: Optional[BackgroundScheduler] = None) -> None:
        self.timezone = timezone
        self._scheduler = scheduler or BackgroundScheduler(timezone=timezone)
        self.tasks: Dict[str, Task] = {}

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def register_task(self, name: str, cadence: str, run: Callable[[], object]) -> bool:
        try:
            trigger = build_trigger(cadence, self.timezone)
        except (ValueError, TypeError) as e:
            error = SchedulingError(name, cadence, str(e))
            self.logger.error("Failed to add task to the scheduler", task=name, cadence=cadence, error=str(error))
            return False

        task = Task(name=name, cadence=cadence, run=run)
        self._scheduler.add_job(
            self._run_task,
            trigger,
            args=[task],
            id=name,
            name=name,
            replace_existing=True,
            coalesce=True
        )
        self.tasks[name] = task
        self.logger.info("Task registered", task=name, cadence=cadence)
        return True

    def start(self) -> None:
        if self.running:
            return
        self._scheduler.start()
        self.logger.info(
            "Scheduler started",
            next_runs={name: str(self.next_run_time(name)) for name in sorted(self.tasks)}
        )

    def stop(self) -> None:
        if not self.running:
            return
        # Running jobs keep their worker thread; only future firings stop
        self._scheduler.shutdown(wait=False)
        self.logger.info("Scheduler stopped")

    def next_run_time(self, name: str):
        job = self._scheduler.get_job(name)
        return getattr(job, "next_run_time", None) if job else None

    def _run_task(self, task: Task) -> object:
        self.logger.info("Task started", task=task.name)
        started = time.monotonic()
        try:
            result = task.run()
        except Exception:
            # Keep the scheduler thread alive; the next firing retries
            self.logger.exception("Task failed", task=task.name)
            return None
        self.logger.info("Task finished", task=task.name, duration_ms=(time.monotonic() - started) * 1000)
        return result

def register_default_tasks(
    scheduler: IScheduler,
    check_subscriptions: Callable[[], object],
    reset_traffic: Callable[[], object],
    check_subscriptions_cadence: str = "@daily",
    reset_traffic_cadence: str = "@weekly"
) -> Dict[str, bool]:
    """
    Registers the two maintenance jobs. Traffic is polled weekly; the engine
    itself makes sure the reset happens once per month.
    """
    plans = {
        "checkSubscriptions": (check_subscriptions_cadence, check_subscriptions),
        "resetTraffic": (reset_traffic_cadence, reset_traffic),
    }
    return {
        name: scheduler.register_task(name, cadence, run)
        for name, (cadence, run) in plans.items()
    }
