import logging
from typing import Any, Optional

from aiauto.infra.supabase.client import SupabaseRest, utc_now_iso

logger = logging.getLogger("uvicorn.error")

TABLE_WEBHOOK_EVENTS = "webhook_events"
TABLE_SUBSCRIPTIONS = "subscriptions"


def _is_duplicate_error(e: Exception) -> bool:
    # PostgREST answers a unique violation with 409
    msg = (str(e) or "").lower()
    return ("409" in msg) or ("duplicate" in msg) or ("unique" in msg) or ("already exists" in msg)


class SupabaseBillingRepo:
    """subscriptions + webhook_events tables, written by the billing webhook."""

    def __init__(self, sb: SupabaseRest):
        self.sb = sb

    # ---------- webhook idempotency ----------
    def webhook_event_processed(self, event_id: str) -> bool:
        """
        True only for an event that was recorded AND fully applied.
        A recorded-but-unprocessed row (earlier attempt failed) is applied again.
        Non-blocking: a failed lookup is logged and treated as "not processed".
        """
        if not event_id:
            return False
        try:
            rows = self.sb.get_json(
                TABLE_WEBHOOK_EVENTS,
                params={"select": "processed", "stripe_event_id": f"eq.{event_id}", "limit": "1"},
            )
        except RuntimeError as e:
            logger.warning("[billing] webhook dedup check failed: %s", e)
            return False
        return bool(rows and isinstance(rows[0], dict) and rows[0].get("processed"))

    def record_webhook_event(self, event_id: str, event_type: str, payload: Any = None) -> bool:
        """Insert the event row. Returns False when the id was already recorded."""
        if not event_id:
            return False
        row = {
            "stripe_event_id": event_id,
            "event_type": event_type or "",
            "payload": payload,
            "processed": False,
        }
        try:
            self.sb.post_json(TABLE_WEBHOOK_EVENTS, [row], prefer="return=representation")
        except RuntimeError as e:
            if _is_duplicate_error(e):
                return False
            raise
        return True

    def mark_webhook_processed(self, event_id: str) -> None:
        self.sb.patch_json(
            TABLE_WEBHOOK_EVENTS,
            params={"stripe_event_id": f"eq.{event_id}"},
            payload={"processed": True},
            prefer="return=minimal",
        )

    # ---------- subscriptions ----------
    def upsert_subscription(
        self,
        *,
        user_id: str,
        stripe_customer_id: str,
        stripe_subscription_id: str,
        status: str,
        price_id: Optional[str] = None,
        current_period_start: Optional[str] = None,
        current_period_end: Optional[str] = None,
        cancel_at_period_end: bool = False,
    ) -> Optional[dict]:
        payload = [{
            "user_id": user_id,
            "stripe_customer_id": stripe_customer_id,
            "stripe_subscription_id": stripe_subscription_id,
            "stripe_price_id": price_id,
            "status": status,
            "current_period_start": current_period_start,
            "current_period_end": current_period_end,
            "cancel_at_period_end": bool(cancel_at_period_end),
            "updated_at": utc_now_iso(),
        }]
        rows = self.sb.post_json(
            TABLE_SUBSCRIPTIONS,
            payload,
            prefer="resolution=merge-duplicates,return=representation",
            params={"on_conflict": "user_id"},
        )
        return rows[0] if rows else None

    def set_status_by_subscription_id(self, stripe_subscription_id: str, status: str, canceled: bool = False):
        payload: dict[str, Any] = {"status": status, "updated_at": utc_now_iso()}
        if canceled:
            payload["canceled_at"] = utc_now_iso()
        return self.sb.patch_json(
            TABLE_SUBSCRIPTIONS,
            params={"stripe_subscription_id": f"eq.{stripe_subscription_id}"},
            payload=payload,
            prefer="return=representation",
        )
