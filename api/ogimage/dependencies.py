"""FastAPI dependency providers. Tests swap these via ``app.dependency_overrides``."""

from __future__ import annotations

from typing import Optional

from .services.fonts import FontResolver
from .services.kv import KeyValueStore, get_store
from .services.raster import RasterEngine, get_raster_engine

_font_resolver: Optional[FontResolver] = None


def provide_store() -> KeyValueStore:
    return get_store()


def provide_raster_engine() -> RasterEngine:
    return get_raster_engine()


def provide_font_resolver() -> FontResolver:
    global _font_resolver
    if _font_resolver is None:
        _font_resolver = FontResolver()
    return _font_resolver
