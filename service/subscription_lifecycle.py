from datetime import datetime
from typing import Optional

from core.clock import Clock, SystemClock
from core.exceptions import AccountsError
from core.logging_config import LoggerMixin, log_performance
from core.types import SubscriptionStatus, ZERO_TIME
from data.models import JobReport, Subscription
from data.user_repository import UserRepository

def next_subscription_state(subscription: Subscription, now: datetime) -> Optional[Subscription]:
    """
    Returns the subscription as it should be at ``now``, or None if it is
    already consistent with its validity window.

    An end date equal to ``now`` triggers neither transition.
    """
    if subscription.status == SubscriptionStatus.INACTIVE and subscription.end_date > now:
        return subscription.with_changes(status=SubscriptionStatus.ACTIVE)
    if subscription.status == SubscriptionStatus.ACTIVE and subscription.end_date < now:
        return subscription.with_changes(status=SubscriptionStatus.INACTIVE, end_date=ZERO_TIME)
    return None

class SubscriptionLifecycleEngine(LoggerMixin):
    """Brings every subscription's status in line with its end date."""

    name = "checkSubscriptions"

    def __init__(self, user_repo: UserRepository, clock: Optional[Clock] = None, timeout: Optional[float] = None) -> None:
        self.user_repo = user_repo
        self.clock = clock or SystemClock()
        self.timeout = timeout

    @log_performance
    def run(self) -> JobReport:
        report = JobReport(name=self.name)
        now = self.clock.now()

        try:
            usernames = self.user_repo.all_usernames(timeout=self.timeout)
        except AccountsError as e:
            self.logger.error("Failed to fetch usernames", error=str(e))
            report.performed = False
            report.error = str(e)
            return report

        report.total = len(usernames)
        for username in usernames:
            try:
                if self._check_user(username, now):
                    report.changed += 1
            except AccountsError as e:
                self.logger.error("Failed to check subscription", username=username, error=str(e))
                report.failed[username] = str(e)

        self.logger.info(
            "Subscription check finished",
            total=report.total,
            changed=report.changed,
            failed=len(report.failed)
        )
        return report

    def _check_user(self, username: str, now: datetime) -> bool:
        user = self.user_repo.get_user(username, timeout=self.timeout)
        if user is None:
            # Deleted between listing and fetching
            return False

        updated = next_subscription_state(user.subscription, now)
        if updated is None:
            return False

        if updated.status == SubscriptionStatus.INACTIVE:
            self.logger.info("Subscription expired, updating status to inactive", username=username)
        else:
            self.logger.info("Subscription window open, updating status to active", username=username)
        self.user_repo.update_user_subscription(username, updated, timeout=self.timeout)
        return True
