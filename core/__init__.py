# Core module exports
from .types import *
from .exceptions import *

__all__ = [
    'SubscriptionStatus',
    'Duration',
    'ZERO_TIME',
    'AccountsError',
    'ValidationError',
    'NotFoundError',
    'ConflictError',
    'PersistenceError',
    'DeadlineExceededError',
    'CheckpointError',
    'SchedulingError',
    'ConfigurationError'
]
