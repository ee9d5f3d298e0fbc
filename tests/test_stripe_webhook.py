import json
from dataclasses import replace
from datetime import datetime, timezone

import pytest
import stripe

from aiauto.domain.usage.models import SubscriptionStatus, ToolType
from aiauto.infra.supabase.client import SupabaseError
from aiauto.services.billing.status import map_stripe_status, subscription_period
from aiauto.services.billing.stripe_webhook import StripeWebhookHandler, WebhookVerificationError

from conftest import TEST_LIMITS, TEST_USER_ID

PERIOD_START = 1772323200  # 2026-03-01T00:00:00Z
PERIOD_END = 1775001600  # 2026-04-01T00:00:00Z


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("active", SubscriptionStatus.ACTIVE),
        ("trialing", SubscriptionStatus.TRIALING),
        ("past_due", SubscriptionStatus.PAST_DUE),
        ("incomplete", SubscriptionStatus.INCOMPLETE),
        ("incomplete_expired", SubscriptionStatus.CANCELED),
        ("paused", SubscriptionStatus.PAUSED),
        ("canceled", SubscriptionStatus.CANCELED),
        ("unpaid", SubscriptionStatus.INACTIVE),
        ("", SubscriptionStatus.INACTIVE),
        (None, SubscriptionStatus.INACTIVE),
    ],
)
def test_map_stripe_status(raw, expected):
    assert map_stripe_status(raw) == expected


def test_subscription_period_reads_item_level_fields():
    sub = {"items": {"data": [{"current_period_start": PERIOD_START, "current_period_end": PERIOD_END}]}}
    start, end = subscription_period(sub)
    assert start == datetime(2026, 3, 1, tzinfo=timezone.utc)
    assert end == datetime(2026, 4, 1, tzinfo=timezone.utc)


@pytest.fixture
def verified(monkeypatch):
    monkeypatch.setattr(stripe.Webhook, "construct_event", lambda **kwargs: None)


@pytest.fixture
def handler(settings, billing_repo, store):
    return StripeWebhookHandler(settings, billing_repo, store)


def _event(event_id: str, event_type: str, obj: dict) -> bytes:
    return json.dumps({"id": event_id, "type": event_type, "data": {"object": obj}}).encode("utf-8")


def _subscription(status="active", **overrides):
    sub = {
        "id": "sub_1",
        "customer": "cus_1",
        "status": status,
        "cancel_at_period_end": False,
        "current_period_start": PERIOD_START,
        "current_period_end": PERIOD_END,
        "metadata": {"supabase_user_id": TEST_USER_ID},
        "items": {"data": [{"price": {"id": "price_pro"}}]},
    }
    sub.update(overrides)
    return sub


def test_bad_signature_raises(monkeypatch, handler):
    def reject(**kwargs):
        raise stripe.SignatureVerificationError("No signatures found", "t=1,v1=bad")

    monkeypatch.setattr(stripe.Webhook, "construct_event", reject)

    with pytest.raises(WebhookVerificationError):
        handler.handle(_event("evt_1", "customer.subscription.created", _subscription()), "t=1,v1=bad")


def test_subscription_created_upserts_and_starts_period(verified, handler, billing_repo, store):
    out = handler.handle(_event("evt_1", "customer.subscription.created", _subscription()), "sig")

    assert out == {"received": True, "processed": True}
    upsert = billing_repo.upserts[0]
    assert upsert["user_id"] == TEST_USER_ID
    assert upsert["status"] == "active"
    assert upsert["price_id"] == "price_pro"
    assert upsert["current_period_end"] == "2026-04-01T00:00:00+00:00"
    assert billing_repo.events["evt_1"]["processed"] is True

    for tool in ToolType:
        record = store.usage_of(TEST_USER_ID, tool)
        assert record.generation_count == 0
        assert record.monthly_limit == TEST_LIMITS[tool.value]
        assert record.period_start == datetime(2026, 3, 1, tzinfo=timezone.utc)


def test_subscription_update_in_same_period_keeps_count(verified, handler, store):
    handler.handle(_event("evt_1", "customer.subscription.created", _subscription()), "sig")
    record = store.usage_of(TEST_USER_ID, ToolType.BLOG_GENERATOR)
    store.put_usage(replace(record, generation_count=2))

    handler.handle(_event("evt_2", "customer.subscription.updated", _subscription(cancel_at_period_end=True)), "sig")

    assert store.usage_of(TEST_USER_ID, ToolType.BLOG_GENERATOR).generation_count == 2


def test_past_due_update_does_not_touch_usage(verified, handler, billing_repo, store):
    handler.handle(_event("evt_1", "customer.subscription.updated", _subscription(status="past_due")), "sig")

    assert billing_repo.upserts[0]["status"] == "past_due"
    assert store.list_usage(TEST_USER_ID) == []


def test_duplicate_event_is_ignored(verified, handler, billing_repo):
    payload = _event("evt_1", "customer.subscription.created", _subscription())
    handler.handle(payload, "sig")

    out = handler.handle(payload, "sig")

    assert out == {"received": True, "ignored": "duplicate"}
    assert len(billing_repo.upserts) == 1


def test_failed_event_is_applied_on_retry(verified, handler, billing_repo, store, monkeypatch):
    payload = _event("evt_1", "customer.subscription.created", _subscription())
    real_upsert = billing_repo.upsert_subscription
    attempts = []

    def flaky_upsert(**kwargs):
        attempts.append(kwargs)
        if len(attempts) == 1:
            raise SupabaseError("Supabase POST failed: 503 Service Unavailable")
        return real_upsert(**kwargs)

    monkeypatch.setattr(billing_repo, "upsert_subscription", flaky_upsert)

    with pytest.raises(SupabaseError):
        handler.handle(payload, "sig")
    assert billing_repo.events["evt_1"]["processed"] is False

    out = handler.handle(payload, "sig")

    assert out == {"received": True, "processed": True}
    assert len(attempts) == 2
    assert billing_repo.upserts[0]["stripe_subscription_id"] == "sub_1"
    assert billing_repo.events["evt_1"]["processed"] is True
    assert store.usage_of(TEST_USER_ID, ToolType.BLOG_GENERATOR).monthly_limit == TEST_LIMITS["blog_generator"]

    assert handler.handle(payload, "sig") == {"received": True, "ignored": "duplicate"}


def test_event_without_id_is_ignored(verified, handler, billing_repo):
    out = handler.handle(_event("", "customer.subscription.created", _subscription()), "sig")

    assert out == {"received": True, "ignored": "missing_id"}
    assert billing_repo.events == {}
    assert billing_repo.upserts == []


def test_expanded_customer_object_is_reduced_to_its_id(verified, handler, billing_repo):
    sub = _subscription(customer={"id": "cus_1", "object": "customer", "email": "a@b.test"})

    handler.handle(_event("evt_1", "customer.subscription.updated", sub), "sig")

    assert billing_repo.upserts[0]["stripe_customer_id"] == "cus_1"


def test_subscription_without_user_metadata_is_acknowledged_only(verified, handler, billing_repo):
    out = handler.handle(_event("evt_1", "customer.subscription.created", _subscription(metadata={})), "sig")

    assert out == {"received": True, "processed": False}
    assert billing_repo.upserts == []
    assert billing_repo.events["evt_1"]["processed"] is False


def test_subscription_deleted_marks_canceled(verified, handler, billing_repo):
    handler.handle(_event("evt_1", "customer.subscription.deleted", _subscription(status="canceled")), "sig")
    assert billing_repo.status_updates == [("sub_1", "canceled", True)]


@pytest.mark.parametrize(
    "invoice",
    [
        {"id": "in_1", "subscription": "sub_1"},
        {"id": "in_1", "parent": {"subscription_details": {"subscription": "sub_1"}}},
    ],
)
def test_payment_failed_marks_past_due(verified, handler, billing_repo, invoice):
    handler.handle(_event("evt_1", "invoice.payment_failed", invoice), "sig")
    assert billing_repo.status_updates == [("sub_1", "past_due", False)]


def test_payment_succeeded_is_acknowledged(verified, handler, billing_repo):
    out = handler.handle(_event("evt_1", "invoice.payment_succeeded", {"id": "in_1"}), "sig")
    assert out == {"received": True, "processed": True}
    assert billing_repo.status_updates == []


def test_unsupported_event_type(verified, handler, billing_repo):
    out = handler.handle(_event("evt_1", "checkout.session.completed", {"id": "cs_1"}), "sig")
    assert out == {"received": True}
    assert billing_repo.events["evt_1"]["processed"] is False


def test_webhook_route_maps_signature_failure_to_400(client, monkeypatch):
    def reject(**kwargs):
        raise ValueError("Invalid payload")

    monkeypatch.setattr(stripe.Webhook, "construct_event", reject)

    r = client.post("/api/webhooks/stripe", content=b"{}", headers={"stripe-signature": "bad"})

    assert r.status_code == 400
    assert r.json() == {"error": "Webhook processing failed"}


def test_webhook_route_processes_event(client, verified, billing_repo):
    r = client.post(
        "/api/webhooks/stripe",
        content=_event("evt_9", "customer.subscription.deleted", _subscription(status="canceled")),
        headers={"stripe-signature": "sig"},
    )

    assert r.status_code == 200
    assert r.json()["received"] is True
    assert billing_repo.status_updates == [("sub_1", "canceled", True)]


def test_webhook_route_retry_after_store_failure(client, verified, billing_repo, monkeypatch):
    payload = _event("evt_7", "customer.subscription.updated", _subscription())
    real_upsert = billing_repo.upsert_subscription
    calls = {"n": 0}

    def flaky_upsert(**kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            raise SupabaseError("Supabase POST failed: 500 Internal Server Error")
        return real_upsert(**kwargs)

    monkeypatch.setattr(billing_repo, "upsert_subscription", flaky_upsert)
    headers = {"stripe-signature": "sig"}

    first = client.post("/api/webhooks/stripe", content=payload, headers=headers)
    retry = client.post("/api/webhooks/stripe", content=payload, headers=headers)

    assert first.status_code == 500
    assert retry.status_code == 200
    assert retry.json() == {"received": True, "processed": True}
    assert billing_repo.upserts[0]["status"] == "active"
