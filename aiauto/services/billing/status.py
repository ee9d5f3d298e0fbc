from datetime import datetime, timezone
from typing import Any, Optional

from aiauto.domain.usage.models import SubscriptionStatus

_STRIPE_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "trialing": SubscriptionStatus.TRIALING,
    "incomplete": SubscriptionStatus.INCOMPLETE,
    "incomplete_expired": SubscriptionStatus.CANCELED,
    "paused": SubscriptionStatus.PAUSED,
    "canceled": SubscriptionStatus.CANCELED,
}


def map_stripe_status(stripe_status: str | None) -> SubscriptionStatus:
    return _STRIPE_STATUS_MAP.get((stripe_status or "").strip().lower(), SubscriptionStatus.INACTIVE)


def as_dict(obj: Any) -> dict:
    """StripeObject (any SDK generation) or plain dict -> plain dict."""
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    for attr in ("to_dict", "to_dict_recursive"):
        fn = getattr(obj, attr, None)
        if callable(fn):
            return fn()
    return dict(obj)


def dt_from_unix_ts(ts: Any) -> Optional[datetime]:
    if not ts:
        return None
    try:
        return datetime.fromtimestamp(int(ts), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def first_item(sub: dict) -> dict:
    items = (sub.get("items") or {}).get("data") or []
    return items[0] if items and isinstance(items[0], dict) else {}


def price_id_of(sub: dict) -> Optional[str]:
    return ((first_item(sub).get("price") or {}).get("id") or "").strip() or None


def subscription_period(sub: dict) -> tuple[Optional[datetime], Optional[datetime]]:
    # newer API versions carry the period on the subscription item
    item = first_item(sub)
    start = sub.get("current_period_start") or item.get("current_period_start")
    end = sub.get("current_period_end") or item.get("current_period_end")
    return dt_from_unix_ts(start), dt_from_unix_ts(end)


def stripe_id(value: Any) -> str:
    """Id of a possibly expanded reference ("cus_123" or {"id": "cus_123", ...})."""
    if isinstance(value, dict):
        value = value.get("id")
    return value.strip() if isinstance(value, str) else ""
