"""
Type definitions for the subscriber accounts service.
Provides type safety and better IDE support.
"""

from typing import Dict, List, Any
from datetime import datetime, timezone
from enum import Enum

Username = str
ChatID = int
Megabytes = float

class SubscriptionStatus(Enum):
    """Subscription states tracked by the lifecycle engine."""
    ACTIVE = "active"
    INACTIVE = "inactive"

    @classmethod
    def parse(cls, value: Any) -> 'SubscriptionStatus':
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())

class Duration:
    """Descriptive subscription duration tags. Not used for date math."""
    MONTH = "month"
    YEAR = "year"
    FOREVER = "forever"

# Marks a subscription without a valid end date (never set or expired).
ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

DatabaseRow = Dict[str, Any]
DatabaseResult = List[DatabaseRow]
