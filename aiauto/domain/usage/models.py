from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class ToolType(str, Enum):
    BLOG_GENERATOR = "blog_generator"
    SOCIAL_CAPTIONS = "social_captions"
    EMAIL_CAMPAIGNS = "email_campaigns"
    PRODUCT_DESCRIPTIONS = "product_descriptions"

    @classmethod
    def values(cls) -> list[str]:
        return [t.value for t in cls]


class DenyReason(str, Enum):
    SUBSCRIPTION_INACTIVE = "SUBSCRIPTION_INACTIVE"
    USAGE_LIMIT_EXCEEDED = "USAGE_LIMIT_EXCEEDED"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    PAUSED = "paused"
    INACTIVE = "inactive"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "SubscriptionStatus":
        try:
            return cls((raw or "").strip().lower())
        except ValueError:
            return cls.INACTIVE


ADMITTING_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING})


@dataclass(frozen=True)
class SubscriptionRecord:
    user_id: str
    status: SubscriptionStatus
    current_period_end: Optional[datetime] = None
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None


@dataclass(frozen=True)
class UsageSnapshot:
    used: int
    limit: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)

    def to_dict(self) -> dict:
        return {"used": self.used, "limit": self.limit, "remaining": self.remaining}


@dataclass(frozen=True)
class UsageRecord:
    user_id: str
    tool_type: ToolType
    generation_count: int
    monthly_limit: int
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None

    def snapshot(self) -> UsageSnapshot:
        return UsageSnapshot(used=self.generation_count, limit=self.monthly_limit)


@dataclass(frozen=True)
class IncrementResult:
    """Outcome of the store's guarded increment.

    admitted is False when the row was already at its limit; the counts are
    the row's values after the call either way.
    """

    admitted: bool
    generation_count: int
    monthly_limit: int

    def snapshot(self) -> UsageSnapshot:
        return UsageSnapshot(used=self.generation_count, limit=self.monthly_limit)


@dataclass(frozen=True)
class GateDecision:
    admitted: bool
    reason: Optional[DenyReason] = None
    usage: Optional[UsageSnapshot] = None

    @classmethod
    def admit(cls, usage: UsageSnapshot) -> "GateDecision":
        return cls(admitted=True, usage=usage)

    @classmethod
    def deny(cls, reason: DenyReason, usage: Optional[UsageSnapshot] = None) -> "GateDecision":
        return cls(admitted=False, reason=reason, usage=usage)

    def to_dict(self) -> dict:
        out: dict = {"admitted": self.admitted}
        if self.reason is not None:
            out["reason"] = self.reason.value
        if self.usage is not None:
            out["usage"] = self.usage.to_dict()
        return out
