import pathlib
import sys
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

# Ensure repository root is importable when pytest is invoked from other directories
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from aiauto.api import deps
from aiauto.config import Settings
from aiauto.domain.auth.models import Identity
from aiauto.domain.usage.models import SubscriptionRecord, SubscriptionStatus, ToolType
from aiauto.infra.memory_store import InMemoryUsageStore
from main import create_app

TEST_USER_ID = "00000000-0000-0000-0000-000000000001"

TEST_LIMITS = {
    "blog_generator": 3,
    "social_captions": 3,
    "email_campaigns": 2,
    "product_descriptions": 2,
}


class StubGeneration:
    """Stands in for GenerationService: canned upstream payloads per tool."""

    def __init__(self):
        self.responses: dict[ToolType, object] = {}
        self.error: Exception | None = None
        self.calls: list[tuple[ToolType, dict]] = []

    def configured(self) -> dict[str, bool]:
        return {t.value: True for t in ToolType}

    def generate(self, tool_type: ToolType, params: dict):
        self.calls.append((tool_type, params))
        if self.error is not None:
            raise self.error
        return self.responses.get(tool_type, "")


class FakeBillingRepo:
    """In-memory SupabaseBillingRepo double."""

    def __init__(self):
        self.events: dict[str, dict] = {}
        self.upserts: list[dict] = []
        self.status_updates: list[tuple[str, str, bool]] = []

    def webhook_event_processed(self, event_id: str) -> bool:
        return bool(self.events.get(event_id, {}).get("processed"))

    def record_webhook_event(self, event_id: str, event_type: str, payload=None) -> bool:
        if event_id in self.events:
            return False
        self.events[event_id] = {"event_type": event_type, "payload": payload, "processed": False}
        return True

    def mark_webhook_processed(self, event_id: str) -> None:
        self.events[event_id]["processed"] = True

    def upsert_subscription(self, **kwargs):
        self.upserts.append(kwargs)
        return kwargs

    def set_status_by_subscription_id(self, stripe_subscription_id: str, status: str, canceled: bool = False):
        self.status_updates.append((stripe_subscription_id, status, canceled))
        return []


@pytest.fixture
def settings():
    return Settings(
        usage_store="memory",
        tool_monthly_limits=dict(TEST_LIMITS),
        stripe_secret_key="sk_test_dummy",
        stripe_webhook_secret="whsec_test_dummy",
    )


@pytest.fixture
def store():
    return InMemoryUsageStore()


@pytest.fixture
def billing_repo():
    return FakeBillingRepo()


@pytest.fixture
def generation():
    return StubGeneration()


@pytest.fixture
def subscribe(store):
    """Give a user a subscription row; active for 30 more days unless told otherwise."""

    def _subscribe(
        user_id: str = TEST_USER_ID,
        status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
        period_end: datetime | None = None,
        customer_id: str | None = None,
    ) -> SubscriptionRecord:
        sub = SubscriptionRecord(
            user_id=user_id,
            status=status,
            current_period_end=period_end or datetime.now(timezone.utc) + timedelta(days=30),
            stripe_customer_id=customer_id,
        )
        store.put_subscription(sub)
        return sub

    return _subscribe


@pytest.fixture
def app_instance(settings, store, billing_repo, generation):
    app = create_app(settings=settings, usage_store=store, billing_repo=billing_repo, generation=generation)
    app.dependency_overrides[deps.require_authed_user] = lambda: Identity(user_id=TEST_USER_ID, email="t@example.com")
    return app


@pytest.fixture
def client(app_instance):
    with TestClient(app_instance) as c:
        yield c
