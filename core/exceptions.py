"""
Custom exception classes for the subscriber accounts service.
Provides specific error handling and better debugging.
"""

from typing import Any

class AccountsError(Exception):
    """Base exception for subscriber account operations."""
    pass

class ValidationError(AccountsError):
    """Raised when input validation fails."""

    def __init__(self, field: str, value: Any, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Validation failed for {field}='{value}': {reason}")

class NotFoundError(AccountsError):
    """Raised when trying to access a non-existent user."""

    def __init__(self, username: str):
        self.username = username
        super().__init__(f"User '{username}' not found")

class ConflictError(AccountsError):
    """Raised when trying to create a user that already exists."""

    def __init__(self, username: str):
        self.username = username
        super().__init__(f"User '{username}' already exists")

class PersistenceError(AccountsError):
    """Raised when database or storage operations fail."""
    pass

class DeadlineExceededError(PersistenceError):
    """Raised when a storage operation does not finish within its deadline."""

    def __init__(self, operation: str, timeout: float):
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"Operation '{operation}' exceeded its deadline of {timeout}s")

class CheckpointError(PersistenceError):
    """Raised when the traffic reset checkpoint cannot be read or written."""
    pass

class SchedulingError(AccountsError):
    """Raised when a task cannot be registered with the scheduler."""

    def __init__(self, name: str, cadence: str, reason: str):
        self.name = name
        self.cadence = cadence
        self.reason = reason
        super().__init__(f"Cannot schedule task '{name}' with cadence '{cadence}': {reason}")

class ConfigurationError(AccountsError):
    """Raised when configuration is invalid or missing."""
    pass
