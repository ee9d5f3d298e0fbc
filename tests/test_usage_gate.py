import threading
from datetime import datetime, timedelta, timezone

import pytest

from aiauto.domain.usage.gate import UsageGate, is_subscription_active
from aiauto.domain.usage.models import (
    DenyReason,
    SubscriptionRecord,
    SubscriptionStatus,
    ToolType,
    UsageRecord,
)
from aiauto.domain.usage.store import StoreUnavailableError
from aiauto.infra.memory_store import InMemoryUsageStore

from conftest import TEST_LIMITS, TEST_USER_ID

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


class UnreachableStore(InMemoryUsageStore):
    def __init__(self, fail_on: str):
        super().__init__()
        self.fail_on = fail_on

    def get_subscription(self, user_id):
        if self.fail_on == "subscription":
            raise StoreUnavailableError("connection refused")
        return super().get_subscription(user_id)

    def increment_usage(self, user_id, tool_type, monthly_limit):
        if self.fail_on == "increment":
            raise StoreUnavailableError("connection refused")
        return super().increment_usage(user_id, tool_type, monthly_limit)


def _gate(store, limits=None):
    return UsageGate(store, limits or TEST_LIMITS, clock=lambda: NOW)


def _active(store, user_id=TEST_USER_ID, status=SubscriptionStatus.ACTIVE, period_end=NOW + timedelta(days=10)):
    store.put_subscription(SubscriptionRecord(user_id=user_id, status=status, current_period_end=period_end))


def test_sequential_calls_admit_exactly_limit_then_deny():
    store = InMemoryUsageStore()
    _active(store)
    gate = _gate(store, {"blog_generator": 3})

    decisions = [gate.check_and_increment(TEST_USER_ID, ToolType.BLOG_GENERATOR) for _ in range(5)]

    assert [d.admitted for d in decisions] == [True, True, True, False, False]
    assert [d.usage.used for d in decisions[:3]] == [1, 2, 3]
    assert decisions[2].usage.remaining == 0
    assert all(d.reason == DenyReason.USAGE_LIMIT_EXCEEDED for d in decisions[3:])
    assert store.usage_of(TEST_USER_ID, ToolType.BLOG_GENERATOR).generation_count == 3


def test_denial_does_not_mutate_count():
    store = InMemoryUsageStore()
    _active(store)
    store.put_usage(UsageRecord(TEST_USER_ID, ToolType.EMAIL_CAMPAIGNS, generation_count=2, monthly_limit=2))
    gate = _gate(store)

    decision = gate.check_and_increment(TEST_USER_ID, ToolType.EMAIL_CAMPAIGNS)

    assert not decision.admitted
    assert decision.usage.to_dict() == {"used": 2, "limit": 2, "remaining": 0}
    assert store.usage_of(TEST_USER_ID, ToolType.EMAIL_CAMPAIGNS).generation_count == 2


def test_concurrent_calls_on_last_unit_admit_exactly_one():
    store = InMemoryUsageStore()
    _active(store)
    store.put_usage(UsageRecord(TEST_USER_ID, ToolType.SOCIAL_CAPTIONS, generation_count=2, monthly_limit=3))
    gate = _gate(store)

    workers = 8
    barrier = threading.Barrier(workers)
    results = []
    results_lock = threading.Lock()

    def run():
        barrier.wait()
        decision = gate.check_and_increment(TEST_USER_ID, ToolType.SOCIAL_CAPTIONS)
        with results_lock:
            results.append(decision)

    threads = [threading.Thread(target=run) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(1 for d in results if d.admitted) == 1
    assert sum(1 for d in results if d.reason == DenyReason.USAGE_LIMIT_EXCEEDED) == workers - 1
    assert store.usage_of(TEST_USER_ID, ToolType.SOCIAL_CAPTIONS).generation_count == 3


def test_tools_are_counted_independently():
    store = InMemoryUsageStore()
    _active(store)
    gate = _gate(store)

    for _ in range(TEST_LIMITS["email_campaigns"]):
        assert gate.check_and_increment(TEST_USER_ID, ToolType.EMAIL_CAMPAIGNS).admitted

    assert not gate.check_and_increment(TEST_USER_ID, ToolType.EMAIL_CAMPAIGNS).admitted
    assert gate.check_and_increment(TEST_USER_ID, ToolType.PRODUCT_DESCRIPTIONS).admitted


@pytest.mark.parametrize(
    "status",
    [
        SubscriptionStatus.CANCELED,
        SubscriptionStatus.PAST_DUE,
        SubscriptionStatus.INCOMPLETE,
        SubscriptionStatus.PAUSED,
        SubscriptionStatus.INACTIVE,
    ],
)
def test_non_admitting_status_is_denied_regardless_of_quota(status):
    store = InMemoryUsageStore()
    _active(store, status=status)
    gate = _gate(store)

    decision = gate.check_and_increment(TEST_USER_ID, ToolType.BLOG_GENERATOR)

    assert decision.reason == DenyReason.SUBSCRIPTION_INACTIVE
    assert store.usage_of(TEST_USER_ID, ToolType.BLOG_GENERATOR) is None


def test_trialing_is_admitted():
    store = InMemoryUsageStore()
    _active(store, status=SubscriptionStatus.TRIALING)
    assert _gate(store).check_and_increment(TEST_USER_ID, ToolType.BLOG_GENERATOR).admitted


def test_active_with_elapsed_period_is_denied():
    store = InMemoryUsageStore()
    _active(store, period_end=NOW - timedelta(seconds=1))

    decision = _gate(store).check_and_increment(TEST_USER_ID, ToolType.BLOG_GENERATOR)

    assert decision.reason == DenyReason.SUBSCRIPTION_INACTIVE


def test_missing_subscription_is_denied():
    decision = _gate(InMemoryUsageStore()).check_and_increment("nobody", ToolType.BLOG_GENERATOR)
    assert decision.to_dict() == {"admitted": False, "reason": "SUBSCRIPTION_INACTIVE"}


@pytest.mark.parametrize("fail_on", ["subscription", "increment"])
def test_store_errors_fail_closed(fail_on):
    store = UnreachableStore(fail_on)
    _active(store)

    decision = _gate(store).check_and_increment(TEST_USER_ID, ToolType.BLOG_GENERATOR)

    assert not decision.admitted
    assert decision.reason == DenyReason.STORE_UNAVAILABLE


def test_unknown_tool_type_is_a_caller_error():
    store = InMemoryUsageStore()
    _active(store)
    with pytest.raises(ValueError):
        _gate(store).check_and_increment(TEST_USER_ID, "video_generator")


def test_is_subscription_active_edges():
    naive_future = (NOW + timedelta(days=1)).replace(tzinfo=None)
    assert is_subscription_active(
        SubscriptionRecord(TEST_USER_ID, SubscriptionStatus.ACTIVE, current_period_end=naive_future), NOW
    )
    assert not is_subscription_active(SubscriptionRecord(TEST_USER_ID, SubscriptionStatus.ACTIVE), NOW)
    assert not is_subscription_active(None, NOW)


def test_start_usage_period_resets_only_on_new_period():
    store = InMemoryUsageStore()
    _active(store)
    gate = _gate(store)
    start, end = NOW - timedelta(days=5), NOW + timedelta(days=25)

    store.start_usage_period(TEST_USER_ID, TEST_LIMITS, start, end)
    gate.check_and_increment(TEST_USER_ID, ToolType.BLOG_GENERATOR)

    # replayed event for the same period keeps the count
    store.start_usage_period(TEST_USER_ID, TEST_LIMITS, start, end)
    assert store.usage_of(TEST_USER_ID, ToolType.BLOG_GENERATOR).generation_count == 1

    store.start_usage_period(TEST_USER_ID, TEST_LIMITS, end, end + timedelta(days=30))
    record = store.usage_of(TEST_USER_ID, ToolType.BLOG_GENERATOR)
    assert record.generation_count == 0
    assert record.monthly_limit == TEST_LIMITS["blog_generator"]
    assert record.period_start == end
