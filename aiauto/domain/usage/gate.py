from datetime import datetime, timezone
from typing import Callable, Optional

from aiauto.domain.usage.models import (
    ADMITTING_STATUSES,
    DenyReason,
    GateDecision,
    SubscriptionRecord,
    ToolType,
)
from aiauto.domain.usage.store import StoreUnavailableError, UsageStore


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def is_subscription_active(sub: Optional[SubscriptionRecord], now: datetime) -> bool:
    """active/trialing and the current period has not elapsed.

    A row with no period end is treated as elapsed.
    """
    if sub is None or sub.status not in ADMITTING_STATUSES:
        return False
    end = sub.current_period_end
    if end is None:
        return False
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    return end > now


class UsageGate:
    """Admit-and-increment authority for generation requests.

    The quota part relies on UsageStore.increment_usage being a single atomic
    guarded update; this class never reads the count and writes it back.
    """

    def __init__(
        self,
        store: UsageStore,
        monthly_limits: dict[str, int],
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.store = store
        self.monthly_limits = dict(monthly_limits)
        self.clock = clock

    def monthly_limit(self, tool_type: ToolType) -> int:
        return int(self.monthly_limits.get(tool_type.value, 0))

    def check_and_increment(self, user_id: str, tool_type: ToolType) -> GateDecision:
        if not isinstance(tool_type, ToolType):
            # caller-side validation error, not a gate decision
            raise ValueError(f"Invalid tool type: {tool_type!r}")

        try:
            sub = self.store.get_subscription(user_id)
        except StoreUnavailableError:
            return GateDecision.deny(DenyReason.STORE_UNAVAILABLE)

        if not is_subscription_active(sub, self.clock()):
            return GateDecision.deny(DenyReason.SUBSCRIPTION_INACTIVE)

        try:
            result = self.store.increment_usage(user_id, tool_type, self.monthly_limit(tool_type))
        except StoreUnavailableError:
            return GateDecision.deny(DenyReason.STORE_UNAVAILABLE)

        if not result.admitted:
            return GateDecision.deny(DenyReason.USAGE_LIMIT_EXCEEDED, usage=result.snapshot())

        return GateDecision.admit(result.snapshot())
