from datetime import datetime
from typing import Any, Mapping, Optional

import requests

from aiauto.domain.usage.models import (
    IncrementResult,
    SubscriptionRecord,
    SubscriptionStatus,
    ToolType,
    UsageRecord,
)
from aiauto.domain.usage.store import StoreUnavailableError, UsageStore
from aiauto.infra.supabase.client import SupabaseRest, parse_ts

TABLE_SUBSCRIPTIONS = "subscriptions"
TABLE_TOOL_USAGE = "tool_usage"

# supabase/sql/001_tool_usage.sql
RPC_INCREMENT_TOOL_USAGE = "increment_tool_usage"
RPC_INITIALIZE_TOOL_USAGE = "initialize_tool_usage"

# RuntimeError covers SupabaseError and missing-env errors
_STORE_ERRORS = (RuntimeError, requests.RequestException, ValueError)


def _first_row(payload: Any) -> Optional[dict]:
    if isinstance(payload, list):
        return payload[0] if payload and isinstance(payload[0], dict) else None
    if isinstance(payload, dict):
        return payload
    return None


def _to_usage_record(row: dict) -> UsageRecord:
    return UsageRecord(
        user_id=row["user_id"],
        tool_type=ToolType(row["tool_type"]),
        generation_count=int(row.get("generation_count") or 0),
        monthly_limit=int(row.get("monthly_limit") or 0),
        period_start=parse_ts(row.get("period_start")),
        period_end=parse_ts(row.get("period_end")),
    )


class SupabaseUsageStore(UsageStore):
    """UsageStore over PostgREST.

    The guarded increment is the database function increment_tool_usage();
    the conditional UPDATE inside it serialises concurrent callers on the row.
    """

    def __init__(self, sb: SupabaseRest):
        self.sb = sb

    def get_subscription(self, user_id: str) -> Optional[SubscriptionRecord]:
        try:
            rows = self.sb.get_json(
                TABLE_SUBSCRIPTIONS,
                params={
                    "select": "user_id,status,current_period_end,stripe_customer_id,stripe_subscription_id",
                    "user_id": f"eq.{user_id}",
                    "limit": "1",
                },
            )
        except _STORE_ERRORS as e:
            raise StoreUnavailableError(f"subscription read failed: {e}") from e

        row = _first_row(rows)
        if not row:
            return None
        return SubscriptionRecord(
            user_id=row.get("user_id") or user_id,
            status=SubscriptionStatus.parse(row.get("status")),
            current_period_end=parse_ts(row.get("current_period_end")),
            stripe_customer_id=(row.get("stripe_customer_id") or "").strip() or None,
            stripe_subscription_id=(row.get("stripe_subscription_id") or "").strip() or None,
        )

    def increment_usage(self, user_id: str, tool_type: ToolType, monthly_limit: int) -> IncrementResult:
        payload = {
            "p_user_id": user_id,
            "p_tool_type": tool_type.value,
            "p_monthly_limit": int(monthly_limit),
        }
        try:
            data = self.sb.rpc(RPC_INCREMENT_TOOL_USAGE, payload)
        except _STORE_ERRORS as e:
            raise StoreUnavailableError(f"{RPC_INCREMENT_TOOL_USAGE} failed: {e}") from e

        row = _first_row(data)
        if row is None or "admitted" not in row:
            raise StoreUnavailableError(f"{RPC_INCREMENT_TOOL_USAGE} returned unexpected payload: {data!r}")

        try:
            return IncrementResult(
                admitted=bool(row["admitted"]),
                generation_count=int(row.get("generation_count") or 0),
                monthly_limit=int(row.get("monthly_limit") or 0),
            )
        except (TypeError, ValueError) as e:
            raise StoreUnavailableError(f"{RPC_INCREMENT_TOOL_USAGE} returned bad counts: {row!r}") from e

    def list_usage(self, user_id: str) -> list[UsageRecord]:
        try:
            rows = self.sb.get_json(
                TABLE_TOOL_USAGE,
                params={
                    "select": "user_id,tool_type,generation_count,monthly_limit,period_start,period_end",
                    "user_id": f"eq.{user_id}",
                    "order": "tool_type.asc",
                },
            )
        except _STORE_ERRORS as e:
            raise StoreUnavailableError(f"usage read failed: {e}") from e

        out = []
        for row in rows or []:
            if not isinstance(row, dict) or row.get("tool_type") not in ToolType.values():
                continue
            out.append(_to_usage_record(row))
        return out

    def start_usage_period(
        self,
        user_id: str,
        limits: Mapping[str, int],
        period_start: datetime,
        period_end: datetime,
    ) -> None:
        payload = {
            "p_user_id": user_id,
            "p_limits": {k: int(v) for k, v in limits.items()},
            "p_period_start": period_start.isoformat(),
            "p_period_end": period_end.isoformat(),
        }
        try:
            self.sb.rpc(RPC_INITIALIZE_TOOL_USAGE, payload)
        except _STORE_ERRORS as e:
            raise StoreUnavailableError(f"{RPC_INITIALIZE_TOOL_USAGE} failed: {e}") from e
