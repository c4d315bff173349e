from datetime import datetime
from typing import Optional

from core.checkpoint import ICheckpoint
from core.clock import Clock, SystemClock, format_time
from core.exceptions import AccountsError, CheckpointError
from core.logging_config import LoggerMixin, log_performance
from data.models import JobReport
from data.user_repository import UserRepository

def same_month(first: datetime, second: datetime) -> bool:
    """Compares calendar months in the timezone of ``second``."""
    first = first.astimezone(second.tzinfo)
    return (first.year, first.month) == (second.year, second.month)

class TrafficResetEngine(LoggerMixin):
    """
    Resets every user's traffic counter once per calendar month.

    The checkpoint is the only memory of the last reset, so calling ``run``
    any number of times within a month resets at most once, across restarts.
    """

    name = "resetTraffic"

    def __init__(
        self,
        user_repo: UserRepository,
        checkpoint: ICheckpoint,
        clock: Optional[Clock] = None,
        timeout: Optional[float] = None
    ) -> None:
        self.user_repo = user_repo
        self.checkpoint = checkpoint
        self.clock = clock or SystemClock()
        self.timeout = timeout

    @log_performance
    def run(self) -> JobReport:
        report = JobReport(name=self.name, performed=False)
        now = self.clock.now()

        try:
            last_reset_time = self.checkpoint.load()
        except CheckpointError as e:
            self.logger.error("Failed to read last reset time", error=str(e))
            report.error = str(e)
            return report

        if same_month(last_reset_time, now):
            self.logger.debug("Traffic already reset this month", last_reset_time=format_time(last_reset_time))
            return report

        self.logger.info("Starting monthly traffic reset", last_reset_time=format_time(last_reset_time))
        try:
            usernames = self.user_repo.all_usernames(timeout=self.timeout)
        except AccountsError as e:
            self.logger.error("Failed to get all users", error=str(e))
            report.error = str(e)
            return report

        report.performed = True
        report.total = len(usernames)
        for username in usernames:
            try:
                if self.user_repo.reset_user_traffic(username, timeout=self.timeout):
                    report.changed += 1
            except AccountsError as e:
                self.logger.error("Failed to reset traffic", username=username, error=str(e))
                report.failed[username] = str(e)

        try:
            self.checkpoint.save(now)
        except CheckpointError as e:
            self.logger.error("Failed to update last reset time", error=str(e))
            report.error = str(e)
            return report

        self.logger.info(
            "Monthly traffic reset finished",
            total=report.total,
            reset=report.changed,
            failed=len(report.failed),
            reset_time=format_time(now)
        )
        return report
