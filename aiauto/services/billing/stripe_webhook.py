import json
import logging

import stripe

from aiauto.config import Settings, require_env
from aiauto.domain.usage.models import ADMITTING_STATUSES, SubscriptionStatus
from aiauto.domain.usage.store import UsageStore
from aiauto.infra.supabase.billing_repo import SupabaseBillingRepo
from aiauto.services.billing.status import map_stripe_status, price_id_of, stripe_id, subscription_period

logger = logging.getLogger("uvicorn.error")

SUPPORTED_EVENTS = (
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
    "invoice.payment_succeeded",
    "invoice.payment_failed",
)


class WebhookVerificationError(ValueError):
    pass


def _invoice_subscription_id(inv: dict) -> str:
    sub_id = inv.get("subscription")
    if not sub_id:
        parent = inv.get("parent") or {}
        sub_id = (parent.get("subscription_details") or {}).get("subscription")
    return stripe_id(sub_id)


class StripeWebhookHandler:
    """
    Applies billing events to the subscriptions / tool_usage tables.
    - every event id is recorded once in webhook_events; replays of a processed
      event are ignored, an unprocessed one (earlier attempt failed) is applied again
    - subscription created/updated -> upsert + usage period bookkeeping
    - subscription deleted -> canceled, invoice.payment_failed -> past_due
    """

    def __init__(self, settings: Settings, billing_repo: SupabaseBillingRepo, usage_store: UsageStore):
        self.settings = settings
        self.billing_repo = billing_repo
        self.usage_store = usage_store

    def verify(self, payload: bytes, signature: str) -> dict:
        require_env("STRIPE_WEBHOOK_SECRET", self.settings.stripe_webhook_secret)
        try:
            stripe.Webhook.construct_event(
                payload=payload,
                sig_header=signature,
                secret=self.settings.stripe_webhook_secret,
            )
        except (ValueError, stripe.SignatureVerificationError) as e:
            raise WebhookVerificationError(str(e)) from e
        return json.loads(payload)

    def handle(self, payload: bytes, signature: str) -> dict:
        event = self.verify(payload, signature)

        event_type = (event.get("type") or "").strip()
        event_id = (event.get("id") or "").strip()
        logger.info("[billing] processing webhook event: %s (%s)", event_type, event_id)

        if not event_id:
            logger.warning("[billing] webhook event without id ignored (type=%s)", event_type)
            return {"received": True, "ignored": "missing_id"}
        if self.billing_repo.webhook_event_processed(event_id):
            return {"received": True, "ignored": "duplicate"}
        if not self.billing_repo.record_webhook_event(event_id, event_type, event.get("data")):
            # recorded by an earlier delivery that did not finish: apply it again
            logger.info("[billing] retrying unprocessed webhook event: %s", event_id)

        if event_type not in SUPPORTED_EVENTS:
            logger.info("[billing] ignoring unsupported event type: %s", event_type)
            return {"received": True}

        obj = (event.get("data") or {}).get("object") or {}
        if event_type in ("customer.subscription.created", "customer.subscription.updated"):
            processed = self.on_subscription_change(obj)
        elif event_type == "customer.subscription.deleted":
            processed = self.on_subscription_deleted(obj)
        elif event_type == "invoice.payment_failed":
            processed = self.on_payment_failed(obj)
        else:
            processed = True

        if processed:
            try:
                self.billing_repo.mark_webhook_processed(event_id)
            except RuntimeError as e:
                logger.error("[billing] marking event %s processed failed: %s", event_id, e)

        return {"received": True, "processed": processed}

    def on_subscription_change(self, sub: dict) -> bool:
        user_id = ((sub.get("metadata") or {}).get("supabase_user_id") or "").strip()
        if not user_id:
            logger.warning("[billing] subscription missing user metadata: %s", sub.get("id"))
            return False

        status = map_stripe_status(sub.get("status"))
        period_start, period_end = subscription_period(sub)
        price_id = price_id_of(sub)

        self.billing_repo.upsert_subscription(
            user_id=user_id,
            stripe_customer_id=stripe_id(sub.get("customer")),
            stripe_subscription_id=(sub.get("id") or "").strip(),
            status=status.value,
            price_id=price_id,
            current_period_start=period_start.isoformat() if period_start else None,
            current_period_end=period_end.isoformat() if period_end else None,
            cancel_at_period_end=bool(sub.get("cancel_at_period_end")),
        )
        logger.info("[billing] subscription updated for user %s, status=%s", user_id, status.value)

        if status in ADMITTING_STATUSES and period_start and period_end:
            self.usage_store.start_usage_period(
                user_id,
                self.settings.tool_monthly_limits,
                period_start,
                period_end,
            )
        return True

    def on_subscription_deleted(self, sub: dict) -> bool:
        user_id = ((sub.get("metadata") or {}).get("supabase_user_id") or "").strip()
        subscription_id = (sub.get("id") or "").strip()
        if not user_id or not subscription_id:
            logger.warning("[billing] subscription missing user metadata: %s", subscription_id)
            return False

        self.billing_repo.set_status_by_subscription_id(
            subscription_id, SubscriptionStatus.CANCELED.value, canceled=True
        )
        logger.info("[billing] subscription canceled for user %s", user_id)
        return True

    def on_payment_failed(self, inv: dict) -> bool:
        subscription_id = _invoice_subscription_id(inv)
        if not subscription_id:
            logger.warning("[billing] invoice %s has no subscription", inv.get("id"))
            return False

        self.billing_repo.set_status_by_subscription_id(subscription_id, SubscriptionStatus.PAST_DUE.value)
        logger.info("[billing] payment failed, subscription %s marked past_due", subscription_id)
        return True
