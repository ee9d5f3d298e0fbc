import logging
from datetime import datetime, timezone
from typing import Callable, Optional

import requests
import stripe

from aiauto.config import Settings
from aiauto.domain.usage.gate import is_subscription_active
from aiauto.domain.usage.models import ADMITTING_STATUSES
from aiauto.domain.usage.store import StoreUnavailableError, UsageStore
from aiauto.infra.supabase.billing_repo import SupabaseBillingRepo
from aiauto.services.billing.status import as_dict, map_stripe_status, price_id_of, subscription_period

logger = logging.getLogger("uvicorn.error")


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


class SubscriptionChecker:
    """
    Caller's subscription status.
    1) stored row (active/trialing, period not elapsed) -> source "database"
    2) known Stripe customer -> first active/trialing subscription, synced back -> source "stripe"
    3) otherwise inactive / "none"
    """

    def __init__(
        self,
        settings: Settings,
        usage_store: UsageStore,
        billing_repo: Optional[SupabaseBillingRepo] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.settings = settings
        self.usage_store = usage_store
        self.billing_repo = billing_repo
        self.clock = clock

    def check(self, user_id: str) -> dict:
        # StoreUnavailableError propagates: the handler answers 503
        sub = self.usage_store.get_subscription(user_id)
        if is_subscription_active(sub, self.clock()):
            return {
                "hasActiveSubscription": True,
                "status": sub.status.value,
                "currentPeriodEnd": _iso(sub.current_period_end),
                "source": "database",
            }

        customer_id = sub.stripe_customer_id if sub else None
        if customer_id and self.settings.stripe_secret_key:
            synced = self._sync_from_stripe(user_id, customer_id)
            if synced:
                return synced

        return {
            "hasActiveSubscription": False,
            "status": "inactive",
            "currentPeriodEnd": None,
            "source": "none",
        }

    def _sync_from_stripe(self, user_id: str, customer_id: str) -> Optional[dict]:
        stripe.api_key = self.settings.stripe_secret_key
        try:
            listing = stripe.Subscription.list(customer=customer_id, status="all", limit=10)
        except stripe.StripeError as e:
            logger.warning("[billing] stripe subscription lookup failed: %s", e)
            return None

        for obj in getattr(listing, "data", None) or []:
            sub = as_dict(obj)
            status = map_stripe_status(sub.get("status"))
            if status not in ADMITTING_STATUSES:
                continue

            period_start, period_end = subscription_period(sub)
            price_id = price_id_of(sub)

            if self.billing_repo is not None:
                try:
                    self.billing_repo.upsert_subscription(
                        user_id=user_id,
                        stripe_customer_id=customer_id,
                        stripe_subscription_id=(sub.get("id") or "").strip(),
                        status=status.value,
                        price_id=price_id,
                        current_period_start=_iso(period_start),
                        current_period_end=_iso(period_end),
                        cancel_at_period_end=bool(sub.get("cancel_at_period_end")),
                    )
                except (RuntimeError, requests.RequestException) as e:
                    raise StoreUnavailableError(f"subscription sync write failed: {e}") from e
            if period_start and period_end:
                self.usage_store.start_usage_period(
                    user_id, self.settings.tool_monthly_limits, period_start, period_end
                )

            logger.info("[billing] synced subscription %s from stripe for user %s", sub.get("id"), user_id)
            return {
                "hasActiveSubscription": True,
                "status": status.value,
                "currentPeriodEnd": _iso(period_end),
                "source": "stripe",
            }

        return None
