"""``GET /og``: the image endpoint."""

import time

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response

from ..core.auth import CallerIdentifier
from ..core.config import settings
from ..core.quota import QuotaGate
from ..core.structured_logging import LoggerFactory, log_event, log_performance_metric
from ..dependencies import provide_font_resolver, provide_raster_engine, provide_store
from ..middleware.request_response import get_client_ip
from ..models.exceptions import MethodNotAllowedError
from ..models.schemas import ErrorResponse
from ..services.accounts import AccountStore, ApiKeyStore
from ..services.background import BackgroundDispatcher
from ..services.cache import decide
from ..services.fonts import FontResolver
from ..services.kv import KeyValueStore
from ..services.raster import RasterEngine
from ..services.render_service import RenderService
from ..services.responses import ResponseAssembler
from ..services.template_resolver import TemplateResolver
from ..services.template_store import TemplateStore
from ..services.usage import OverageStore, UsageStore
from ..services.validation import first_values, normalize_params, validate_params

logger = LoggerFactory.get_logger(__name__)
router = APIRouter(tags=["og"])


@router.get(
    "/og",
    response_class=Response,
    responses={
        200: {"content": {"image/png": {}, "image/svg+xml": {}}, "description": "Rendered preview image"},
        400: {"model": ErrorResponse, "description": "Invalid parameters"},
        401: {"model": ErrorResponse, "description": "Missing or invalid credential"},
        403: {"model": ErrorResponse, "description": "Template owned by another account"},
        404: {"model": ErrorResponse, "description": "Template not found"},
        429: {"model": ErrorResponse, "description": "Monthly quota exceeded"},
    },
)
async def og_image(
    request: Request,
    background_tasks: BackgroundTasks,
    kv: KeyValueStore = Depends(provide_store),
    raster: RasterEngine = Depends(provide_raster_engine),
    fonts: FontResolver = Depends(provide_font_resolver),
):
    """Render a 1200x630 preview image from query parameters."""
    started = time.perf_counter()
    request_id = request.state.request_id

    raw = first_values(request.query_params.multi_items())
    render_request = validate_params(raw)
    cache = decide(
        normalize_params(raw),
        raw,
        request.headers,
        settings.cache_version,
        settings.edge_cache_status_header,
    )
    log_event(
        logger, "og_request",
        template=render_request.template.value,
        template_id=render_request.template_id,
        output_format=render_request.format.value,
        etag=cache.etag,
    )

    api_keys = ApiKeyStore(kv)
    caller = await CallerIdentifier(api_keys).identify(
        request.headers,
        request.cookies,
        get_client_ip(request),
        template_preview=bool(render_request.template_id),
    )
    resolved = await TemplateResolver(TemplateStore(kv)).resolve(render_request, caller)

    gate = QuotaGate(AccountStore(kv), UsageStore(kv), OverageStore(kv))
    decision = await gate.check(caller)

    result = await RenderService(fonts, raster).render(render_request, resolved)
    render_ms = int((time.perf_counter() - started) * 1000)
    log_performance_metric(logger, "og_render", render_ms, template=resolved.kind.value,
                           output_format=result.format.value, fallback=result.fallback)

    dispatcher = BackgroundDispatcher(background_tasks, request_id)
    return ResponseAssembler(gate, api_keys).assemble(
        result, cache, request_id, render_ms, dispatcher, caller, decision, resolved
    )


@router.api_route("/og", methods=["POST", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def og_method_not_allowed():
    raise MethodNotAllowedError("GET")
