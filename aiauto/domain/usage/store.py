from abc import ABC, abstractmethod
from datetime import datetime
from typing import Mapping, Optional

from aiauto.domain.usage.models import IncrementResult, SubscriptionRecord, ToolType, UsageRecord


class StoreUnavailableError(RuntimeError):
    """The backing row store could not be reached or returned garbage."""


class UsageStore(ABC):
    """Row-store interface consumed by UsageGate and the usage endpoints.

    Implementations raise StoreUnavailableError for any transport, HTTP or
    decode failure.
    """

    @abstractmethod
    def get_subscription(self, user_id: str) -> Optional[SubscriptionRecord]:
        """Return the user's subscription row, or None when there is none."""
        raise NotImplementedError

    @abstractmethod
    def increment_usage(self, user_id: str, tool_type: ToolType, monthly_limit: int) -> IncrementResult:
        """Atomically create-if-missing, then increment unless at the limit.

        monthly_limit is only used when the row has to be created.
        """
        raise NotImplementedError

    @abstractmethod
    def list_usage(self, user_id: str) -> list[UsageRecord]:
        """Return the user's usage rows without mutating them."""
        raise NotImplementedError

    @abstractmethod
    def start_usage_period(
        self,
        user_id: str,
        limits: Mapping[str, int],
        period_start: datetime,
        period_end: datetime,
    ) -> None:
        """Align every tool row with the billing period.

        Counts reset to 0 only for rows whose stored period_start differs.
        """
        raise NotImplementedError
