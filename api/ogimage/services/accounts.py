"""API key and account records."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from ..core.security import generate_api_key, hash_api_key
from ..core.structured_logging import LoggerFactory
from ..models.schemas import AccountRecord, ApiKeyRecord
from .kv import KeyValueStore

logger = LoggerFactory.get_logger(__name__)

DEFAULT_PLAN = "free"


class ApiKeyStore:
    """Stores ``key:{kid}`` records holding only the key hash."""

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    @staticmethod
    def _key(kid: str) -> str:
        return f"key:{kid}"

    async def get(self, kid: str) -> Optional[ApiKeyRecord]:
        data = await self.kv.get_json(self._key(kid))
        return ApiKeyRecord(**data) if data else None

    async def put(self, kid: str, record: ApiKeyRecord) -> None:
        await self.kv.put_json(self._key(kid), record.model_dump(mode="json"))

    async def create(self, account_id: str, name: str = "default") -> str:
        """Create a key for an account and return the raw key (shown once)."""
        key = generate_api_key()
        record = ApiKeyRecord(account=account_id, hash=hash_api_key(key.raw), name=name)
        await self.put(key.kid, record)
        logger.info("API key created", kid=key.kid, account_id=account_id)
        return key.raw

    async def touch_last_used(self, kid: str) -> None:
        record = await self.get(kid)
        if record is None:
            return
        record.last_used = datetime.now(timezone.utc)
        await self.put(kid, record)


class AccountStore:
    """Stores ``account:{id}`` records; the plan defaults to free."""

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    @staticmethod
    def _key(account_id: str) -> str:
        return f"account:{account_id}"

    async def get(self, account_id: str) -> Optional[AccountRecord]:
        data = await self.kv.get_json(self._key(account_id))
        return AccountRecord(**data) if data else None

    async def put(self, record: AccountRecord) -> None:
        await self.kv.put_json(self._key(record.id), record.model_dump(mode="json"))

    async def get_plan(self, account_id: str) -> str:
        """Resolve an account's plan; lookup failures degrade to free."""
        try:
            record = await self.get(account_id)
        except Exception as e:
            logger.warning("Plan lookup failed, assuming free", account_id=account_id, error=str(e))
            return DEFAULT_PLAN
        if record is None or not record.plan:
            return DEFAULT_PLAN
        return record.plan.lower()
