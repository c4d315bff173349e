from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Optional

from core.clock import format_time, parse_time
from core.types import ChatID, Duration, Megabytes, SubscriptionStatus, Username, ZERO_TIME

@dataclass
class Subscription:
    status: SubscriptionStatus = SubscriptionStatus.INACTIVE
    duration: str = Duration.MONTH
    start_date: datetime = ZERO_TIME
    end_date: datetime = ZERO_TIME
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "subscription_status": self.status.value,
            "duration": self.duration,
            "start_subscription": format_time(self.start_date),
            "end_subscription": format_time(self.end_date),
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Subscription':
        return cls(
            id=row["subscription_id"],
            status=SubscriptionStatus.parse(row["subscription_status"]),
            duration=row["duration"],
            start_date=parse_time(row["start_subscription"]),
            end_date=parse_time(row["end_subscription"]),
        )

    def with_changes(self, **changes: Any) -> 'Subscription':
        return replace(self, **changes)

@dataclass
class User:
    username: Username
    chat_id: ChatID = 0
    traffic: Megabytes = 0.0
    subscription: Optional[Subscription] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "username": self.username,
            "chat_id": self.chat_id,
            "traffic": self.traffic,
            "subscription": self.subscription.to_dict() if self.subscription else None,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'User':
        return cls(
            username=row["username"],
            chat_id=row["chat_id"] or 0,
            traffic=row["traffic"] or 0.0,
            subscription=Subscription.from_row(row),
        )

@dataclass
class JobReport:
    """Outcome of one batch job run over the account set."""
    name: str
    total: int = 0
    changed: int = 0
    failed: Dict[Username, str] = field(default_factory=dict)
    performed: bool = True
    error: Optional[str] = None
