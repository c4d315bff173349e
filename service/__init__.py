# Service module exports
from .subscription_lifecycle import SubscriptionLifecycleEngine, next_subscription_state
from .traffic_reset import TrafficResetEngine
from .scheduler import TaskScheduler, register_default_tasks

__all__ = [
    'SubscriptionLifecycleEngine',
    'next_subscription_state',
    'TrafficResetEngine',
    'TaskScheduler',
    'register_default_tasks'
]
