"""Final HTTP response for a rendered image, plus its deferred side effects."""

from __future__ import annotations

from typing import Dict, Optional

from fastapi import Response

from ..core.auth import Caller
from ..core.quota import QuotaDecision, QuotaGate
from ..core.structured_logging import LoggerFactory, log_event
from ..services.accounts import ApiKeyStore
from .background import BackgroundDispatcher
from .cache import CacheDecision, cache_headers
from .render_service import RenderResult
from .template_resolver import ResolvedTemplate

logger = LoggerFactory.get_logger(__name__)


def _header_safe(value: str, limit: int = 200) -> str:
    return value.encode("ascii", "ignore").decode("ascii").replace("\r", " ").replace("\n", " ")[:limit]


def image_headers(result: RenderResult, cache: CacheDecision, request_id: str, render_ms: int) -> Dict[str, str]:
    headers = cache_headers(cache)
    headers["X-Request-ID"] = request_id
    headers["X-Render-Time"] = f"{render_ms}ms"
    if result.fallback:
        headers["X-Fallback-To-SVG"] = "true"
        if result.fallback_reason:
            headers["X-Fallback-Reason"] = _header_safe(result.fallback_reason)
    return headers


class ResponseAssembler:
    def __init__(self, quota: QuotaGate, api_keys: ApiKeyStore):
        self.quota = quota
        self.api_keys = api_keys

    def assemble(
        self,
        result: RenderResult,
        cache: CacheDecision,
        request_id: str,
        render_ms: int,
        dispatcher: BackgroundDispatcher,
        caller: Caller,
        decision: QuotaDecision,
        resolved: Optional[ResolvedTemplate] = None,
    ) -> Response:
        headers = image_headers(result, cache, request_id, render_ms)
        self._schedule_side_effects(result, cache, render_ms, dispatcher, caller, decision, resolved)
        return Response(content=result.body, media_type=result.media_type, headers=headers)

    def _schedule_side_effects(self, result, cache, render_ms, dispatcher, caller, decision, resolved) -> None:
        if decision.metered:
            dispatcher.schedule(
                "quota_usage", log_event, logger, "quota_usage",
                kid=caller.kid, account_id=caller.account_id, plan=decision.plan,
                limit=decision.limit, usage=decision.usage, remaining=decision.remaining,
                overage=decision.overage, failed_open=decision.failed_open,
            )
        if decision.overage:
            dispatcher.schedule("overage_write", self.quota.record_overage, decision)
        if caller.kid:
            dispatcher.schedule("api_key_touch", self.api_keys.touch_last_used, caller.kid)
        if cache.invalidated:
            dispatcher.schedule(
                "cache_invalidated", log_event, logger, "cache_invalidated",
                cache_version=cache.cache_version, previous_version=cache.edge.existing_version,
                etag=cache.etag,
            )
        dispatcher.schedule(
            "image_rendered", log_event, logger, "image_rendered",
            template=resolved.kind.value if resolved else None,
            template_source=resolved.source if resolved else None,
            output_format=result.format.value, fallback=result.fallback,
            font_source=result.font_source, duration_ms=render_ms,
            bytes_out=len(result.body),
        )
        dispatcher.schedule("cache_performance", log_event, logger, "cache_performance", **cache.metrics())
