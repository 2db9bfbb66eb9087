"""Monthly quota enforcement with a pay-as-you-go overage path.

Counting is approximate: the increment is never rolled back and
storage failures let the request through.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ..models.exceptions import QuotaExceededError
from ..services.accounts import AccountStore
from ..services.usage import OverageStore, UsageStore, current_yyyymm, current_yyyymmdd, seconds_until_next_month
from .auth import Caller
from .config import settings
from .structured_logging import LoggerFactory, log_event

logger = LoggerFactory.get_logger(__name__)


@dataclass
class QuotaDecision:
    """Outcome of the quota check for one accepted request."""

    metered: bool
    plan: str = "free"
    limit: int = 0
    usage: int = 0
    overage: bool = False
    failed_open: bool = False
    account_id: Optional[str] = None
    credential_id: Optional[str] = None
    yyyymm: str = ""
    day: str = ""

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.usage)


class QuotaGate:
    def __init__(self, accounts: AccountStore, usage: UsageStore, overage: OverageStore):
        self.accounts = accounts
        self.usage = usage
        self.overage = overage

    async def check(self, caller: Caller, now: Optional[datetime] = None) -> QuotaDecision:
        """Count this request against the caller's monthly quota.

        Returns:
            QuotaDecision: ``overage=True`` when a paid plan is past its limit;
            the overage write itself is left to the caller to schedule.

        Raises:
            QuotaExceededError: a free-tier credential is past its limit.
        """
        if caller.is_anonymous or not caller.credential_id:
            return QuotaDecision(metered=False)

        now = now or datetime.now(timezone.utc)
        yyyymm = current_yyyymm(now)
        plan = await self.accounts.get_plan(caller.account_id)
        limit = settings.plan_limit(plan)
        decision = QuotaDecision(
            metered=True,
            plan=plan,
            limit=limit,
            account_id=caller.account_id,
            credential_id=caller.credential_id,
            yyyymm=yyyymm,
            day=current_yyyymmdd(now),
        )

        try:
            decision.usage = await self.usage.increment(caller.credential_id, yyyymm)
        except Exception as e:
            log_event(logger, "quota_check_failed", level="error",
                      kid=caller.kid, account_id=caller.account_id, error=type(e).__name__)
            decision.failed_open = True
            return decision

        if decision.usage <= limit:
            return decision

        if settings.is_paid_plan(plan):
            decision.overage = True
            return decision

        retry_after = seconds_until_next_month(now)
        log_event(logger, "quota_exceeded", level="warning", kid=caller.kid,
                  account_id=caller.account_id, plan=plan, limit=limit, usage=decision.usage)
        raise QuotaExceededError(plan=plan, limit=limit, usage=decision.usage, retry_after=retry_after)

    async def record_overage(self, decision: QuotaDecision) -> None:
        if not decision.overage or not decision.account_id:
            return
        record = await self.overage.increment(decision.account_id, decision.day)
        log_event(logger, "overage_recorded", account_id=decision.account_id,
                  day=record.day, count=record.count, plan=decision.plan)
