"""
Tests for UserRepository against a temporary sqlite database.
"""

import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from core.exceptions import (
    ConflictError,
    DeadlineExceededError,
    NotFoundError,
    PersistenceError,
    ValidationError
)
from core.types import SubscriptionStatus, ZERO_TIME
from data.models import Subscription, User
from data.user_repository import UserRepository


def make_user(username="alice", clock_now=None, **overrides):
    start = clock_now
    subscription = Subscription(
        status=SubscriptionStatus.ACTIVE,
        duration="year",
        start_date=start,
        end_date=start + timedelta(days=365)
    )
    fields = {"chat_id": 12345, "traffic": 12.5, "subscription": subscription}
    fields.update(overrides)
    return User(username=username, **fields)


class TestCreateAndGet:

    def test_round_trip_preserves_fields(self, user_repo, clock):
        user = make_user(clock_now=clock.now())

        created = user_repo.create_user(user)
        fetched = user_repo.get_user("alice")

        assert created.subscription.id is not None
        assert fetched.username == user.username
        assert fetched.chat_id == user.chat_id
        assert fetched.traffic == user.traffic
        assert fetched.subscription.id == created.subscription.id
        assert fetched.subscription.status == user.subscription.status
        assert fetched.subscription.duration == user.subscription.duration
        assert fetched.subscription.start_date == user.subscription.start_date
        assert fetched.subscription.end_date == user.subscription.end_date
        assert fetched == created

    def test_defaults_without_subscription(self, user_repo, clock):
        user_repo.create_user(User(username="bob", chat_id=7))

        fetched = user_repo.get_user("bob")

        assert fetched.traffic == 0
        assert fetched.subscription.status == SubscriptionStatus.INACTIVE
        assert fetched.subscription.duration == "month"
        assert fetched.subscription.start_date == clock.now()
        assert fetched.subscription.end_date == ZERO_TIME

    @pytest.mark.parametrize("username", ["", "   ", "\t\n"])
    def test_rejects_blank_username(self, user_repo, row_count, username):
        with pytest.raises(ValidationError):
            user_repo.create_user(User(username=username))
        assert row_count("subscriptions") == 0

    def test_rejects_negative_traffic(self, user_repo):
        with pytest.raises(ValidationError):
            user_repo.create_user(User(username="carol", traffic=-1))

    def test_rejects_unknown_status(self, user_repo, clock):
        subscription = Subscription(status="paused", start_date=clock.now())
        with pytest.raises(ValidationError):
            user_repo.create_user(User(username="carol", subscription=subscription))

    def test_duplicate_username_conflicts(self, user_repo, row_count, clock):
        user_repo.create_user(make_user(clock_now=clock.now()))

        with pytest.raises(ConflictError, match="User 'alice' already exists"):
            user_repo.create_user(make_user(clock_now=clock.now()))

        assert row_count("users") == 1
        assert row_count("subscriptions") == 1

    def test_failed_user_insert_leaves_no_subscription(self, user_repo, row_count):
        # The subscription insert succeeds and the user insert fails
        with patch("data.user_repository.INSERT_USER_SQL", "INSERT INTO missing_table VALUES (?, ?, ?, ?)"):
            with pytest.raises(PersistenceError):
                user_repo.create_user(User(username="dave"))

        assert row_count("users") == 0
        assert row_count("subscriptions") == 0

    def test_get_missing_user_returns_none(self, user_repo):
        assert user_repo.get_user("nobody") is None


class TestUpdateSubscription:

    def test_replaces_all_fields(self, user_repo, clock):
        user_repo.create_user(User(username="alice"))
        new_start = clock.now() + timedelta(days=1)
        replacement = Subscription(
            status=SubscriptionStatus.ACTIVE,
            duration="forever",
            start_date=new_start,
            end_date=new_start + timedelta(days=30)
        )

        user_repo.update_user_subscription("alice", replacement)

        subscription = user_repo.get_user("alice").subscription
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.duration == "forever"
        assert subscription.start_date == replacement.start_date
        assert subscription.end_date == replacement.end_date

    def test_missing_user_raises_not_found(self, user_repo, clock):
        with pytest.raises(NotFoundError):
            user_repo.update_user_subscription("ghost", Subscription(start_date=clock.now()))

    def test_invalid_status_rejected(self, user_repo, clock):
        user_repo.create_user(User(username="alice"))
        with pytest.raises(ValidationError):
            user_repo.update_user_subscription("alice", Subscription(status="expired", start_date=clock.now()))


class TestDeleteAndCleanup:

    def test_delete_removes_user_and_subscription(self, user_repo, row_count):
        user_repo.create_user(User(username="alice"))
        user_repo.create_user(User(username="bob"))

        assert user_repo.delete_user("alice") is True

        assert user_repo.get_user("alice") is None
        assert user_repo.user_exists("bob")
        assert row_count("users") == 1
        assert row_count("subscriptions") == 1

    def test_delete_missing_user_is_silent(self, user_repo, row_count):
        user_repo.create_user(User(username="alice"))

        assert user_repo.delete_user("ghost") is False
        assert row_count("users") == 1
        assert row_count("subscriptions") == 1

    def test_delete_then_cleanup_leaves_no_orphans(self, user_repo, database):
        for name in ("a", "b", "c"):
            user_repo.create_user(User(username=name))

        user_repo.delete_user("b")
        user_repo.cleanup_orphaned_subscriptions()

        orphans = database.execute_query(
            "SELECT id FROM subscriptions WHERE id NOT IN (SELECT subscription_id FROM users)"
        )
        assert orphans == []

    def test_cleanup_removes_orphaned_rows(self, user_repo, database, row_count):
        user_repo.create_user(User(username="alice"))
        database.execute_query(
            "INSERT INTO subscriptions (subscription_status, duration, start_subscription, end_subscription) "
            "VALUES ('inactive', 'month', '2024-01-01T00:00:00+00:00', '0001-01-01T00:00:00+00:00')"
        )

        removed = user_repo.cleanup_orphaned_subscriptions()

        assert removed == 1
        assert row_count("subscriptions") == 1
        assert user_repo.get_user("alice") is not None

    def test_startup_cleans_orphans(self, user_repo, database, clock, row_count):
        database.execute_query(
            "INSERT INTO subscriptions (subscription_status, duration, start_subscription, end_subscription) "
            "VALUES ('active', 'month', '2024-01-01T00:00:00+00:00', '2024-02-01T00:00:00+00:00')"
        )
        assert row_count("subscriptions") == 1

        UserRepository(database, clock=clock)

        assert row_count("subscriptions") == 0


class TestStatusAndTraffic:

    def test_user_exists(self, user_repo):
        user_repo.create_user(User(username="alice"))
        assert user_repo.user_exists("alice") is True
        assert user_repo.user_exists("bob") is False

    def test_subscription_status(self, user_repo, clock):
        user_repo.create_user(make_user(clock_now=clock.now()))
        assert user_repo.subscription_status("alice") == SubscriptionStatus.ACTIVE

    def test_subscription_status_missing_user(self, user_repo):
        with pytest.raises(NotFoundError):
            user_repo.subscription_status("ghost")

    def test_update_traffic_sets_exact_value(self, user_repo):
        user_repo.create_user(User(username="alice", traffic=10))

        assert user_repo.update_user_traffic("alice", 42.5) is True
        assert user_repo.get_user("alice").traffic == 42.5
        assert user_repo.update_user_traffic("alice", 3) is True
        assert user_repo.get_user("alice").traffic == 3

    def test_update_traffic_missing_user_is_silent(self, user_repo):
        assert user_repo.update_user_traffic("ghost", 10) is False

    @pytest.mark.parametrize("value", [-0.1, "abc", None, True, float("nan")])
    def test_update_traffic_rejects_bad_values(self, user_repo, value):
        user_repo.create_user(User(username="alice"))
        with pytest.raises(ValidationError):
            user_repo.update_user_traffic("alice", value)

    def test_reset_traffic(self, user_repo):
        user_repo.create_user(User(username="alice", traffic=99))

        assert user_repo.reset_user_traffic("alice") is True
        assert user_repo.get_user("alice").traffic == 0

    def test_all_usernames(self, user_repo):
        assert user_repo.all_usernames() == []
        for name in ("a", "b", "c"):
            user_repo.create_user(User(username=name))

        assert set(user_repo.all_usernames()) == {"a", "b", "c"}


PLUS_THREE = timezone(timedelta(hours=3))


class TestOutOfRangeValues:

    @pytest.mark.parametrize("chat_id", [2 ** 64, 2 ** 63, -2 ** 63 - 1])
    def test_chat_id_outside_integer_range(self, user_repo, row_count, chat_id):
        with pytest.raises(ValidationError, match="chat_id"):
            user_repo.create_user(User(username="alice", chat_id=chat_id))

        assert row_count("users") == 0
        assert row_count("subscriptions") == 0

    @pytest.mark.parametrize("chat_id", [2 ** 63 - 1, -2 ** 63])
    def test_chat_id_at_integer_bounds(self, user_repo, chat_id):
        user_repo.create_user(User(username="alice", chat_id=chat_id))
        assert user_repo.get_user("alice").chat_id == chat_id

    @pytest.mark.parametrize("chat_id", ["12", 1.5, True, None])
    def test_chat_id_must_be_integer(self, user_repo, chat_id):
        with pytest.raises(ValidationError, match="chat_id"):
            user_repo.create_user(User(username="alice", chat_id=chat_id))

    def test_create_with_date_overflowing_in_utc(self, user_repo, row_count, clock):
        subscription = Subscription(start_date=datetime(1, 1, 1, tzinfo=PLUS_THREE), end_date=clock.now())

        with pytest.raises(ValidationError, match="start_subscription"):
            user_repo.create_user(User(username="alice", subscription=subscription))

        assert row_count("subscriptions") == 0

    def test_update_with_date_overflowing_in_utc(self, user_repo, clock):
        user_repo.create_user(User(username="alice"))
        before = user_repo.get_user("alice").subscription
        replacement = Subscription(
            status=SubscriptionStatus.ACTIVE,
            start_date=clock.now(),
            end_date=datetime(1, 1, 1, tzinfo=PLUS_THREE)
        )

        with pytest.raises(ValidationError, match="end_subscription"):
            user_repo.update_user_subscription("alice", replacement)

        assert user_repo.get_user("alice").subscription == before

    def test_late_date_with_negative_offset(self, user_repo, clock):
        user_repo.create_user(User(username="alice"))
        end = datetime(9999, 12, 31, 23, 0, tzinfo=timezone(timedelta(hours=-3)))

        with pytest.raises(ValidationError):
            user_repo.update_user_subscription("alice", Subscription(start_date=clock.now(), end_date=end))


class TestConcurrency:

    def test_concurrent_create_same_username(self, user_repo, row_count):
        barrier = threading.Barrier(2)
        outcomes = []
        lock = threading.Lock()

        def create():
            barrier.wait()
            try:
                user_repo.create_user(User(username="racer"))
                result = "created"
            except ConflictError:
                result = "conflict"
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=create) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert sorted(outcomes) == ["conflict", "created"]
        assert row_count("users") == 1
        assert row_count("subscriptions") == 1

    def test_write_waiting_past_deadline_fails(self, user_repo):
        user_repo.create_user(User(username="alice", traffic=5))

        user_repo._write_lock.acquire()
        try:
            with pytest.raises(DeadlineExceededError):
                user_repo.update_user_traffic("alice", 10, timeout=0.05)
            # Reads do not wait for the write lock
            assert user_repo.get_user("alice").traffic == 5
        finally:
            user_repo._write_lock.release()

        assert user_repo.get_user("alice").traffic == 5
