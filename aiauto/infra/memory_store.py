# memory_store.py
import threading
from datetime import datetime
from typing import Mapping, Optional

from aiauto.domain.usage.models import IncrementResult, SubscriptionRecord, ToolType, UsageRecord
from aiauto.domain.usage.store import UsageStore


class InMemoryUsageStore(UsageStore):
    """
    Process-local store (thread safe).
    - one lock covers create + compare + increment, mirroring increment_tool_usage()
    - not shared across processes: local development and tests only
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: dict[str, SubscriptionRecord] = {}
        # (user_id, tool_type) -> UsageRecord
        self._usage: dict[tuple[str, str], UsageRecord] = {}

    def put_subscription(self, sub: SubscriptionRecord) -> None:
        with self._lock:
            self._subscriptions[sub.user_id] = sub

    def put_usage(self, record: UsageRecord) -> None:
        with self._lock:
            self._usage[(record.user_id, record.tool_type.value)] = record

    def get_subscription(self, user_id: str) -> Optional[SubscriptionRecord]:
        with self._lock:
            return self._subscriptions.get(user_id)

    def increment_usage(self, user_id: str, tool_type: ToolType, monthly_limit: int) -> IncrementResult:
        key = (user_id, tool_type.value)
        with self._lock:
            row = self._usage.get(key)
            if row is None:
                row = UsageRecord(
                    user_id=user_id,
                    tool_type=tool_type,
                    generation_count=0,
                    monthly_limit=int(monthly_limit),
                )

            if row.generation_count >= row.monthly_limit:
                self._usage[key] = row
                return IncrementResult(False, row.generation_count, row.monthly_limit)

            row = UsageRecord(
                user_id=row.user_id,
                tool_type=row.tool_type,
                generation_count=row.generation_count + 1,
                monthly_limit=row.monthly_limit,
                period_start=row.period_start,
                period_end=row.period_end,
            )
            self._usage[key] = row
            return IncrementResult(True, row.generation_count, row.monthly_limit)

    def list_usage(self, user_id: str) -> list[UsageRecord]:
        with self._lock:
            rows = [r for (uid, _), r in self._usage.items() if uid == user_id]
        return sorted(rows, key=lambda r: r.tool_type.value)

    def start_usage_period(
        self,
        user_id: str,
        limits: Mapping[str, int],
        period_start: datetime,
        period_end: datetime,
    ) -> None:
        with self._lock:
            for tool in ToolType:
                key = (user_id, tool.value)
                prev = self._usage.get(key)
                same_period = prev is not None and prev.period_start == period_start
                self._usage[key] = UsageRecord(
                    user_id=user_id,
                    tool_type=tool,
                    generation_count=prev.generation_count if same_period else 0,
                    monthly_limit=int(limits.get(tool.value, 0)),
                    period_start=period_start,
                    period_end=period_end,
                )

    def usage_of(self, user_id: str, tool_type: ToolType) -> Optional[UsageRecord]:
        with self._lock:
            return self._usage.get((user_id, tool_type.value))
