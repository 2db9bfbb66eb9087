"""Monthly usage and daily overage counters."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from ..core.config import settings
from ..models.schemas import OverageRecord
from .kv import KeyValueStore


def current_yyyymm(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y%m")


def current_yyyymmdd(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y%m%d")


def seconds_until_next_month(now: Optional[datetime] = None) -> int:
    """Seconds from ``now`` until 00:00 UTC on the first of next month."""
    now = now or datetime.now(timezone.utc)
    if now.month == 12:
        boundary = datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        boundary = datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)
    return max(1, int((boundary - now).total_seconds()))


class UsageStore:
    """Counters keyed ``usage:{credential}:{YYYYMM}``."""

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    @staticmethod
    def key(credential_id: str, yyyymm: str) -> str:
        return f"usage:{credential_id}:{yyyymm}"

    async def increment(self, credential_id: str, yyyymm: Optional[str] = None) -> int:
        yyyymm = yyyymm or current_yyyymm()
        return await self.kv.increment(self.key(credential_id, yyyymm), ttl=settings.usage_ttl_seconds)

    async def get(self, credential_id: str, yyyymm: Optional[str] = None) -> int:
        return await self.kv.get_int(self.key(credential_id, yyyymm or current_yyyymm()))

    async def reset(self, credential_id: str, yyyymm: Optional[str] = None) -> int:
        """Delete a month's counter and return the count it held."""
        yyyymm = yyyymm or current_yyyymm()
        previous = await self.get(credential_id, yyyymm)
        await self.kv.delete(self.key(credential_id, yyyymm))
        return previous


class OverageStore:
    """Counters keyed ``overage:{account}:{YYYYMMDD}`` for paid-tier usage past quota."""

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    @staticmethod
    def key(account_id: str, day: str) -> str:
        return f"overage:{account_id}:{day}"

    async def increment(self, account_id: str, day: Optional[str] = None) -> OverageRecord:
        day = day or current_yyyymmdd()
        key = self.key(account_id, day)
        data = await self.kv.get_json(key)
        record = OverageRecord(**data) if data else OverageRecord(account=account_id, day=day)
        record.count += 1
        record.updated_at = datetime.now(timezone.utc)
        await self.kv.put_json(key, record.model_dump(mode="json"))
        return record

    async def get(self, account_id: str, day: Optional[str] = None) -> Optional[OverageRecord]:
        data = await self.kv.get_json(self.key(account_id, day or current_yyyymmdd()))
        return OverageRecord(**data) if data else None

    async def list_for_day(self, day: str) -> List[OverageRecord]:
        """All accounts' overage for one UTC day, for the billing reporter."""
        records: List[OverageRecord] = []
        for key in await self.kv.scan_prefix("overage:"):
            if not key.endswith(f":{day}"):
                continue
            data = await self.kv.get_json(key)
            if data:
                records.append(OverageRecord(**data))
        return records
