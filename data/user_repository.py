import math
import sqlite3
import threading
import time
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Any, Iterator, List, Optional, Tuple

from .db import Database
from .models import Subscription, User
from core.clock import Clock, SystemClock, format_time
from core.exceptions import (
    ConflictError,
    DeadlineExceededError,
    NotFoundError,
    PersistenceError,
    ValidationError
)
from core.logging_config import LoggerMixin
from core.types import ChatID, Megabytes, Username, SubscriptionStatus

SCHEMA = """
CREATE TABLE IF NOT EXISTS subscriptions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    subscription_status TEXT NOT NULL DEFAULT 'inactive',
    duration TEXT NOT NULL DEFAULT 'month',
    start_subscription TEXT NOT NULL,
    end_subscription TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS users (
    username TEXT PRIMARY KEY,
    subscription_id INTEGER NOT NULL,
    traffic REAL NOT NULL DEFAULT 0,
    chat_id INTEGER,
    FOREIGN KEY (subscription_id) REFERENCES subscriptions(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_users_subscription_id ON users(subscription_id);
"""

SELECT_USER_SQL = """
SELECT u.username, u.traffic, u.chat_id,
       s.id AS subscription_id, s.subscription_status, s.duration,
       s.start_subscription, s.end_subscription
FROM users u
JOIN subscriptions s ON u.subscription_id = s.id
WHERE u.username = ?
"""

SUBSCRIPTION_STATUS_SQL = """
SELECT s.subscription_status
FROM users u
JOIN subscriptions s ON u.subscription_id = s.id
WHERE u.username = ?
"""

UPDATE_SUBSCRIPTION_SQL = """
UPDATE subscriptions
SET subscription_status = ?, duration = ?, start_subscription = ?, end_subscription = ?
WHERE id = ?
"""

DELETE_SUBSCRIPTION_IF_UNUSED_SQL = """
DELETE FROM subscriptions
WHERE id = ? AND NOT EXISTS (SELECT 1 FROM users WHERE subscription_id = ?)
"""

DELETE_ORPHANED_SUBSCRIPTIONS_SQL = """
DELETE FROM subscriptions
WHERE NOT EXISTS (SELECT 1 FROM users WHERE users.subscription_id = subscriptions.id)
"""

INSERT_SUBSCRIPTION_SQL = (
    "INSERT INTO subscriptions (subscription_status, duration, start_subscription, end_subscription) "
    "VALUES (?, ?, ?, ?)"
)
INSERT_USER_SQL = "INSERT INTO users (username, subscription_id, traffic, chat_id) VALUES (?, ?, ?, ?)"
USER_EXISTS_SQL = "SELECT EXISTS(SELECT 1 FROM users WHERE username = ?)"
SUBSCRIPTION_ID_SQL = "SELECT subscription_id FROM users WHERE username = ?"
DELETE_USER_SQL = "DELETE FROM users WHERE username = ?"
UPDATE_TRAFFIC_SQL = "UPDATE users SET traffic = ? WHERE username = ?"
ALL_USERNAMES_SQL = "SELECT username FROM users"

# Range of a sqlite INTEGER column
SQLITE_INTEGER_MIN = -2 ** 63
SQLITE_INTEGER_MAX = 2 ** 63 - 1

class UserRepository(LoggerMixin):
    """
    Persistence for users and their subscriptions.

    Every user owns exactly one subscription row. Mutations are serialized by
    a single repository-wide lock; reads go straight to the pool and may see
    a write that is still in progress. Every operation takes an optional
    ``timeout`` in seconds, falling back to ``default_timeout``.
    """

    def __init__(
        self,
        db: Database,
        clock: Optional[Clock] = None,
        default_timeout: Optional[float] = None,
        cleanup_on_start: bool = True
    ) -> None:
        self.db = db
        self.clock = clock or SystemClock()
        self.default_timeout = default_timeout
        self._write_lock = threading.Lock()
        self._create_tables_if_not_exist()
        if cleanup_on_start:
            # Repair subscriptions left behind by a crash between statements
            self.cleanup_orphaned_subscriptions()

    def _create_tables_if_not_exist(self) -> None:
        self.db.execute_script(SCHEMA)

    # Internal helpers -------------------------------------------------

    def _resolve_timeout(self, timeout: Optional[float]) -> Optional[float]:
        return self.default_timeout if timeout is None else timeout

    @contextmanager
    def _write(self, operation: str, timeout: Optional[float]) -> Iterator[sqlite3.Connection]:
        timeout = self._resolve_timeout(timeout)
        started = time.monotonic()
        if not self._write_lock.acquire(timeout=-1 if timeout is None else timeout):
            raise DeadlineExceededError(operation, timeout)
        try:
            remaining = None
            if timeout is not None:
                remaining = timeout - (time.monotonic() - started)
                if remaining <= 0:
                    raise DeadlineExceededError(operation, timeout)
            with self.db.get_connection(operation, remaining) as conn:
                yield conn
        finally:
            self._write_lock.release()

    def _read(self, operation: str, timeout: Optional[float]):
        return self.db.get_connection(operation, self._resolve_timeout(timeout))

    @staticmethod
    def _validate_username(username: Any) -> Username:
        if not isinstance(username, str) or not username.strip():
            raise ValidationError("username", username, "unsupported username")
        return username

    @staticmethod
    def _validate_status(status: Any) -> SubscriptionStatus:
        try:
            return SubscriptionStatus.parse(status)
        except ValueError:
            raise ValidationError("subscription_status", status, "must be 'active' or 'inactive'") from None

    @staticmethod
    def _validate_chat_id(chat_id: Any) -> ChatID:
        if isinstance(chat_id, bool) or not isinstance(chat_id, int):
            raise ValidationError("chat_id", chat_id, "must be an integer")
        if not SQLITE_INTEGER_MIN <= chat_id <= SQLITE_INTEGER_MAX:
            raise ValidationError("chat_id", chat_id, "must fit in a signed 64-bit integer")
        return chat_id

    @staticmethod
    def _encode_window(subscription: Subscription) -> Tuple[str, str]:
        """Returns start and end as stored UTC strings."""
        encoded = []
        for field, value in (("start_subscription", subscription.start_date), ("end_subscription", subscription.end_date)):
            if not isinstance(value, datetime):
                raise ValidationError(field, value, "must be a datetime")
            try:
                encoded.append(format_time(value))
            except OverflowError:
                raise ValidationError(field, value, "is out of range once converted to UTC") from None
        return encoded[0], encoded[1]

    @staticmethod
    def _validate_traffic(value: Any, field: str = "traffic") -> Megabytes:
        if isinstance(value, bool):
            raise ValidationError(field, value, "must be a number")
        try:
            traffic = float(value)
        except (TypeError, ValueError):
            raise ValidationError(field, value, "must be a number") from None
        if not math.isfinite(traffic) or traffic < 0:
            raise ValidationError(field, value, "must be a non-negative number")
        return traffic

    # Public API -------------------------------------------------------

    def create_user(self, user: User, timeout: Optional[float] = None) -> User:
        """
        Inserts a user together with a fresh subscription row.

        The subscription carried by ``user`` is stored as given; without one
        the user starts inactive, on a monthly tag, starting now.

        Raises:
            ValidationError: Empty username, negative traffic, unknown status,
                chat_id outside the INTEGER range or a date that overflows in UTC.
            ConflictError: The username is taken.
        """
        username = self._validate_username(user.username)
        chat_id = self._validate_chat_id(user.chat_id)
        traffic = self._validate_traffic(user.traffic)
        subscription = user.subscription or Subscription(start_date=self.clock.now())
        status = self._validate_status(subscription.status)
        start, end = self._encode_window(subscription)

        self.logger.info("Preparing to insert user", username=username)
        with self._write("create_user", timeout) as conn:
            exists = conn.execute(USER_EXISTS_SQL, (username,)).fetchone()[0]
            if exists:
                raise ConflictError(username)
            try:
                cursor = conn.execute(
                    INSERT_SUBSCRIPTION_SQL,
                    (status.value, subscription.duration, start, end)
                )
                subscription_id = cursor.lastrowid
                conn.execute(INSERT_USER_SQL, (username, subscription_id, traffic, chat_id))
            except sqlite3.IntegrityError as e:
                raise ConflictError(username) from e

        self.logger.info("User created", username=username, subscription_id=subscription_id)
        return User(
            username=username,
            chat_id=chat_id,
            traffic=traffic,
            subscription=replace(subscription, id=subscription_id, status=status)
        )

    def get_user(self, username: Username, timeout: Optional[float] = None) -> Optional[User]:
        """Returns the user joined with its subscription, or None when absent."""
        with self._read("get_user", timeout) as conn:
            row = conn.execute(SELECT_USER_SQL, (username,)).fetchone()
        if row is None:
            self.logger.debug("User not found", username=username)
            return None
        try:
            return User.from_row(dict(row))
        except (ValueError, KeyError) as e:
            raise PersistenceError(f"Corrupt record for user '{username}': {e}") from e

    def update_user_subscription(self, username: Username, subscription: Subscription, timeout: Optional[float] = None) -> None:
        """Replaces status, duration, start and end of the user's subscription."""
        status = self._validate_status(subscription.status)
        start, end = self._encode_window(subscription)

        with self._write("update_user_subscription", timeout) as conn:
            row = conn.execute(SUBSCRIPTION_ID_SQL, (username,)).fetchone()
            if row is None:
                raise NotFoundError(username)
            conn.execute(
                UPDATE_SUBSCRIPTION_SQL,
                (
                    status.value,
                    subscription.duration,
                    start,
                    end,
                    row["subscription_id"]
                )
            )

        self.logger.info("Subscription updated", username=username, status=status.value)

    def delete_user(self, username: Username, timeout: Optional[float] = None) -> bool:
        """
        Deletes the user and, in the same transaction, its now unreferenced subscription.

        Returns False, without raising, when the user does not exist.
        """
        with self._write("delete_user", timeout) as conn:
            row = conn.execute(SUBSCRIPTION_ID_SQL, (username,)).fetchone()
            if row is None:
                subscription_id = None
            else:
                subscription_id = row["subscription_id"]
                conn.execute(DELETE_USER_SQL, (username,))
                conn.execute(DELETE_SUBSCRIPTION_IF_UNUSED_SQL, (subscription_id, subscription_id))

        if subscription_id is None:
            self.logger.warning("Delete matched no user", username=username)
            return False
        self.logger.info("User and subscription deleted", username=username, subscription_id=subscription_id)
        return True

    def user_exists(self, username: Username, timeout: Optional[float] = None) -> bool:
        with self._read("user_exists", timeout) as conn:
            return bool(conn.execute(USER_EXISTS_SQL, (username,)).fetchone()[0])

    def subscription_status(self, username: Username, timeout: Optional[float] = None) -> SubscriptionStatus:
        with self._read("subscription_status", timeout) as conn:
            row = conn.execute(SUBSCRIPTION_STATUS_SQL, (username,)).fetchone()
        if row is None:
            raise NotFoundError(username)
        return self._validate_status(row["subscription_status"])

    def update_user_traffic(self, username: Username, value: float, timeout: Optional[float] = None) -> bool:
        """
        Sets the user's traffic to exactly ``value`` megabytes.

        Returns False, without raising, when the user does not exist.
        """
        traffic = self._validate_traffic(value)
        with self._write("update_user_traffic", timeout) as conn:
            updated = conn.execute(UPDATE_TRAFFIC_SQL, (traffic, username)).rowcount
        if not updated:
            self.logger.warning("Traffic update matched no user", username=username)
            return False
        self.logger.debug("Traffic updated", username=username, traffic=traffic)
        return True

    def reset_user_traffic(self, username: Username, timeout: Optional[float] = None) -> bool:
        return self.update_user_traffic(username, 0, timeout=timeout)

    def all_usernames(self, timeout: Optional[float] = None) -> List[Username]:
        with self._read("all_usernames", timeout) as conn:
            return [row["username"] for row in conn.execute(ALL_USERNAMES_SQL).fetchall()]

    def cleanup_orphaned_subscriptions(self, timeout: Optional[float] = None) -> int:
        """Deletes every subscription no user references. Returns how many were removed."""
        with self._write("cleanup_orphaned_subscriptions", timeout) as conn:
            removed = conn.execute(DELETE_ORPHANED_SUBSCRIPTIONS_SQL).rowcount
        if removed:
            self.logger.info("Orphaned subscriptions removed", count=removed)
        return removed
