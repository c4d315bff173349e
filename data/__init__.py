# Data module exports
from .models import User, Subscription, JobReport
from .db import Database
from .user_repository import UserRepository

__all__ = [
    'User',
    'Subscription',
    'JobReport',
    'Database',
    'UserRepository'
]
