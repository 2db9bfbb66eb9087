"""
Operator endpoints for usage inspection and reset
"""

import json
import re
from typing import List

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError as PydanticValidationError

from ..core.security import admin_secret_matches
from ..core.structured_logging import LoggerFactory
from ..dependencies import provide_store
from ..middleware.request_response import get_client_ip
from ..models.exceptions import UnauthorizedError, UnsupportedMediaTypeError, ValidationError
from ..models.schemas import OverageRecord, UsageResetRequest, UsageResetResponse, UsageResponse
from ..services.kv import KeyValueStore
from ..services.usage import OverageStore, UsageStore, current_yyyymm

logger = LoggerFactory.get_logger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])

DAY_RE = re.compile(r"^\d{8}$")


async def require_admin(request: Request) -> None:
    if not admin_secret_matches(request.headers.get("x-admin-secret")):
        logger.security_event("admin_auth_failed", "Rejected admin request",
                              path=request.url.path, ip=get_client_ip(request))
        raise UnauthorizedError()


@router.post("/usage/reset", response_model=UsageResetResponse, dependencies=[Depends(require_admin)])
async def reset_usage(request: Request, kv: KeyValueStore = Depends(provide_store)):
    """
    Reset a key's monthly usage counter.

    Body: ``{"kid": "...", "yyyymm": "202501"}``; ``yyyymm`` defaults to the
    current UTC month.
    """
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type != "application/json":
        raise UnsupportedMediaTypeError()

    try:
        payload = json.loads(await request.body())
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("body", "Request body must be valid JSON")
    if not isinstance(payload, dict):
        raise ValidationError("body", "Request body must be a JSON object")

    try:
        body = UsageResetRequest(**payload)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "body"
        raise ValidationError(field, f"Invalid {field}: {first.get('msg', 'invalid value')}")

    yyyymm = body.yyyymm or current_yyyymm()
    previous = await UsageStore(kv).reset(body.kid, yyyymm)
    logger.audit_event("usage_reset", f"usage:{body.kid}:{yyyymm}", "ok", previous=previous)
    return UsageResetResponse(kid=body.kid, yyyymm=yyyymm, previous=previous)


@router.get("/usage/{kid}", response_model=UsageResponse, dependencies=[Depends(require_admin)])
async def get_usage(kid: str, yyyymm: str = "", kv: KeyValueStore = Depends(provide_store)):
    """Current (or given) month's request count for one credential."""
    try:
        query = UsageResetRequest(kid=kid, yyyymm=yyyymm or None)
    except PydanticValidationError as e:
        field = ".".join(str(part) for part in e.errors()[0].get("loc", ())) or "kid"
        raise ValidationError(field, f"Invalid {field} parameter")
    kid = query.kid
    month = query.yyyymm or current_yyyymm()
    count = await UsageStore(kv).get(kid, month)
    return UsageResponse(kid=kid, yyyymm=month, count=count)


@router.get("/overage/{day}", response_model=List[OverageRecord], dependencies=[Depends(require_admin)])
async def list_overage(day: str, kv: KeyValueStore = Depends(provide_store)):
    """Overage records for one UTC day (``YYYYMMDD``), as consumed by billing."""
    if not DAY_RE.match(day):
        raise ValidationError("day", "day must be YYYYMMDD")
    return await OverageStore(kv).list_for_day(day)
