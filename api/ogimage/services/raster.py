"""SVG → PNG conversion behind a process-wide, lazily initialized engine.

CairoSVG binds to the native cairo library when first imported. That import
happens once per process: concurrent first requests share one in-flight
initialization future, and a failed initialization is remembered so later
requests fall back to SVG immediately instead of retrying it.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import importlib
import threading
from typing import Any, Callable, Optional

from ..core.config import settings
from ..core.structured_logging import LoggerFactory, log_event
from ..models.exceptions import RasterUnavailableError
from .svg import WIDTH

logger = LoggerFactory.get_logger(__name__)


class RasterEngine:
    """Capability interface: ``await render(svg) -> png bytes``."""

    name = "abstract"

    async def render(self, svg: str) -> bytes:
        raise NotImplementedError


def _load_cairosvg() -> Any:
    module = importlib.import_module("cairosvg")
    if not hasattr(module, "svg2png"):
        raise RuntimeError("cairosvg does not provide svg2png")
    return module


class CairoRasterEngine(RasterEngine):
    name = "cairosvg"

    def __init__(self, loader: Callable[[], Any] = _load_cairosvg):
        self._loader = loader
        self._lock = threading.Lock()
        self._init_future: Optional[concurrent.futures.Future] = None
        self._executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="raster-init")
        self.init_attempts = 0

    def _load(self) -> Any:
        self.init_attempts += 1
        try:
            return self._loader()
        except Exception as e:
            log_event(logger, "raster_unavailable", level="error", engine=self.name,
                      reason=f"{type(e).__name__}: {e}")
            raise

    def _start_initialization(self) -> concurrent.futures.Future:
        with self._lock:
            if self._init_future is None:
                self._init_future = self._executor.submit(self._load)
            return self._init_future

    @property
    def unavailable_reason(self) -> Optional[str]:
        future = self._init_future
        if future is None or not future.done() or future.exception() is None:
            return None
        exc = future.exception()
        return f"{type(exc).__name__}: {exc}"

    async def initialize(self) -> Any:
        """Load the backend once. Every caller sees the same outcome."""
        future = self._start_initialization()
        try:
            return await asyncio.wrap_future(future)
        except Exception as e:
            raise RasterUnavailableError(f"raster engine initialization failed: {type(e).__name__}") from e

    async def render(self, svg: str) -> bytes:
        backend = await self.initialize()
        try:
            return await asyncio.to_thread(
                backend.svg2png,
                bytestring=svg.encode("utf-8"),
                output_width=WIDTH,
                background_color="white",
            )
        except Exception as e:
            raise RasterUnavailableError(f"raster conversion failed: {type(e).__name__}") from e


class DisabledRasterEngine(RasterEngine):
    name = "disabled"

    async def render(self, svg: str) -> bytes:
        raise RasterUnavailableError("raster rendering disabled by configuration")


_engine: Optional[RasterEngine] = None
_engine_lock = threading.Lock()


def get_raster_engine() -> RasterEngine:
    global _engine
    if _engine is None:
        with _engine_lock:
            if _engine is None:
                _engine = CairoRasterEngine() if settings.raster_enabled else DisabledRasterEngine()
    return _engine


def set_raster_engine(engine: Optional[RasterEngine]) -> None:
    global _engine
    _engine = engine

