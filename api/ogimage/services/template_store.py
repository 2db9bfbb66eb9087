"""Stored custom templates (``template:{id}``), owned by one account each."""

from __future__ import annotations

from typing import List, Optional

from ..models.schemas import TemplateRecord
from .kv import KeyValueStore


class TemplateStore:
    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    @staticmethod
    def _key(template_id: str) -> str:
        return f"template:{template_id}"

    async def get(self, template_id: str) -> Optional[TemplateRecord]:
        data = await self.kv.get_json(self._key(template_id))
        return TemplateRecord(**data) if data else None

    async def put(self, record: TemplateRecord) -> None:
        await self.kv.put_json(self._key(record.id), record.model_dump(mode="json"))

    async def list_for_account(self, account_id: str) -> List[TemplateRecord]:
        records = []
        for key in await self.kv.scan_prefix("template:"):
            data = await self.kv.get_json(key)
            if data and data.get("account") == account_id:
                records.append(TemplateRecord(**data))
        return records
