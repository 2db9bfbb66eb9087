"""Render pipeline: template content → SVG → PNG, falling back to SVG.

States run in order ``RENDER_VECTOR`` → (``RENDER_RASTER``) → ``DONE``;
when the raster engine is unavailable, ``RENDER_VECTOR_FALLBACK`` replaces
the raster result with the SVG already produced.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from ..core.structured_logging import LoggerFactory, log_event
from ..models.exceptions import RasterUnavailableError, RenderError
from ..models.schemas import OutputFormat, RenderRequest
from .fonts import FontResolver, ResolvedFont
from .raster import RasterEngine
from .svg import SvgCanvas
from .template_resolver import ResolvedTemplate
from .templates import theme_colors

logger = LoggerFactory.get_logger(__name__)

SVG_MEDIA_TYPE = "image/svg+xml"
PNG_MEDIA_TYPE = "image/png"


class RenderState(str, Enum):
    RENDER_VECTOR = "render_vector"
    RENDER_RASTER = "render_raster"
    RENDER_VECTOR_FALLBACK = "render_vector_fallback"
    DONE = "done"


@dataclass
class RenderResult:
    body: bytes
    media_type: str
    format: OutputFormat
    fallback: bool = False
    fallback_reason: Optional[str] = None
    font_source: str = "system"
    states: List[RenderState] = field(default_factory=list)
    duration_ms: int = 0


def build_svg(resolved: ResolvedTemplate, request: RenderRequest, font: ResolvedFont) -> str:
    canvas = SvgCanvas(theme_colors(request.theme).background, font.family_css, font.embedded)
    resolved.spec.draw(canvas, resolved.fields, theme_colors(request.theme))
    return canvas.to_svg()


class RenderService:
    """Orchestrates font loading, SVG layout and raster conversion."""

    def __init__(self, fonts: FontResolver, raster: RasterEngine):
        self.fonts = fonts
        self.raster = raster

    async def render_vector(self, request: RenderRequest, resolved: ResolvedTemplate) -> Tuple[str, ResolvedFont]:
        glyphs = "".join(resolved.fields.values())
        font = await self.fonts.resolve(request.font, request.font_url, glyphs)
        try:
            return build_svg(resolved, request, font), font
        except Exception as e:
            logger.exception("SVG generation failed", template=resolved.kind.value)
            raise RenderError(f"SVG generation failed: {type(e).__name__}") from e

    async def render(self, request: RenderRequest, resolved: ResolvedTemplate) -> RenderResult:
        started = time.perf_counter()
        states = [RenderState.RENDER_VECTOR]
        svg, font = await self.render_vector(request, resolved)
        svg_bytes = svg.encode("utf-8")

        def finish(result: RenderResult) -> RenderResult:
            result.states = states + [RenderState.DONE]
            result.font_source = font.source
            result.duration_ms = int((time.perf_counter() - started) * 1000)
            return result

        if not request.wants_raster:
            return finish(RenderResult(svg_bytes, SVG_MEDIA_TYPE, OutputFormat.SVG))

        states.append(RenderState.RENDER_RASTER)
        try:
            png = await self.raster.render(svg)
        except RasterUnavailableError as e:
            if not request.fallback:
                raise RenderError(f"Raster output unavailable: {e.reason}") from e
            states.append(RenderState.RENDER_VECTOR_FALLBACK)
            log_event(logger, "svg_fallback", level="warning", template=resolved.kind.value,
                      engine=self.raster.name, reason=e.reason)
            return finish(RenderResult(svg_bytes, SVG_MEDIA_TYPE, OutputFormat.SVG,
                                       fallback=True, fallback_reason=e.reason))
        except Exception as e:
            logger.exception("Raster conversion failed", template=resolved.kind.value)
            raise RenderError(f"Raster conversion failed: {type(e).__name__}") from e

        return finish(RenderResult(png, PNG_MEDIA_TYPE, OutputFormat.PNG))
