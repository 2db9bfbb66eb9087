"""Font loading for SVG rendering.

Named fonts come from Google Fonts, subset to the glyphs actually drawn.
Custom fonts are fetched from a caller-supplied HTTPS URL under a size cap.
Every failure degrades: custom → default named font → system font stack.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..core.config import settings
from ..core.structured_logging import LoggerFactory, log_event
from ..models.schemas import Font
from .svg import EmbeddedFont
from .templates import FONT_FAMILIES, SYSTEM_FONT_STACK, font_family_css

logger = LoggerFactory.get_logger(__name__)

GOOGLE_FONTS_CSS_URL = "https://fonts.googleapis.com/css2"
CSS_FONT_SRC_RE = re.compile(r"src: url\((.+?)\) format\('(opentype|truetype)'\)")
DEFAULT_FONT = Font.INTER

FONT_FORMATS = {
    ".ttf": ("font/ttf", "truetype"),
    ".otf": ("font/otf", "opentype"),
    ".woff": ("font/woff", "woff"),
    ".woff2": ("font/woff2", "woff2"),
}

_REJECTED_CONTENT_TYPES = ("text/", "image/", "audio/", "video/", "application/json", "application/xml")
_TRANSIENT_ERRORS = (httpx.TransportError,)


class FontFetchError(Exception):
    pass


@dataclass
class ResolvedFont:
    family_css: str
    embedded: Optional[EmbeddedFont]
    source: str
    fell_back: bool = False


def glyph_subset(text: str) -> str:
    """Unique characters of ``text`` in first-seen order."""
    return "".join(dict.fromkeys(text))


def custom_family_name(url: str) -> str:
    stem = urlparse(url).path.rsplit("/", 1)[-1].split(".", 1)[0]
    stem = re.sub(r"[^A-Za-z0-9_-]", "", stem)
    return stem or "CustomFont"


class FontResolver:
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(settings.font_fetch_timeout),
            follow_redirects=True,
            transport=self.transport,
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(max(1, settings.font_fetch_attempts)),
            wait=wait_exponential(multiplier=0.2, max=2),
            retry=retry_if_exception_type(_TRANSIENT_ERRORS),
            reraise=True,
        )

    async def _get(self, client: httpx.AsyncClient, url: str, **kwargs) -> httpx.Response:
        async for attempt in self._retrying():
            with attempt:
                response = await client.get(url, **kwargs)
                response.raise_for_status()
                return response
        raise FontFetchError(f"no attempt made for {url}")

    async def load_named(self, font: Font, text: str) -> EmbeddedFont:
        family, _ = FONT_FAMILIES[font]
        params = {"family": f"{family}:wght@400;700", "display": "swap"}
        subset = glyph_subset(text)
        if subset:
            params["text"] = subset
        async with self._client() as client:
            css = (await self._get(client, GOOGLE_FONTS_CSS_URL, params=params)).text
            match = CSS_FONT_SRC_RE.search(css)
            if not match:
                raise FontFetchError(f"no font source in stylesheet for {family}")
            font_url, css_format = match.group(1).strip("'\""), match.group(2)
            data = (await self._get(client, font_url)).content
        if not data:
            raise FontFetchError(f"empty font file for {family}")
        mime = "font/otf" if css_format == "opentype" else "font/ttf"
        return EmbeddedFont(family=family, data=data, mime=mime, css_format=css_format)

    async def load_custom(self, url: str) -> EmbeddedFont:
        ext = "." + urlparse(url).path.rsplit(".", 1)[-1].lower()
        mime, css_format = FONT_FORMATS.get(ext, ("font/ttf", "truetype"))
        limit = settings.max_font_bytes
        async with self._client() as client:
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
                if content_type.startswith(_REJECTED_CONTENT_TYPES) or "html" in content_type:
                    raise FontFetchError(f"unexpected content type {content_type}")
                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > limit:
                    raise FontFetchError(f"font larger than {limit} bytes")
                data = bytearray()
                async for chunk in response.aiter_bytes():
                    data.extend(chunk)
                    if len(data) > limit:
                        raise FontFetchError(f"font larger than {limit} bytes")
        if not data:
            raise FontFetchError("empty font file")
        return EmbeddedFont(family=custom_family_name(url), data=bytes(data), mime=mime, css_format=css_format)

    def system(self, font: Font, fell_back: bool = False) -> ResolvedFont:
        family, _ = FONT_FAMILIES[font]
        return ResolvedFont(f"'{family}', {SYSTEM_FONT_STACK}", None, "system", fell_back)

    async def resolve(self, font: Font, font_url: Optional[str], text: str) -> ResolvedFont:
        """Resolve the font for one render, never raising."""
        if not settings.font_fetch_enabled:
            return self.system(font)

        if font_url:
            try:
                embedded = await self.load_custom(font_url)
                return ResolvedFont(font_family_css(embedded.family, "sans-serif"), embedded, "custom")
            except (FontFetchError, httpx.HTTPError) as e:
                log_event(logger, "font_fallback", level="warning", requested="custom",
                          fallback=DEFAULT_FONT.value, reason=str(e))
                font = DEFAULT_FONT

        candidates = [font] if font == DEFAULT_FONT else [font, DEFAULT_FONT]
        for index, candidate in enumerate(candidates):
            try:
                embedded = await self.load_named(candidate, text)
                _, generic = FONT_FAMILIES[candidate]
                return ResolvedFont(
                    font_family_css(embedded.family, generic),
                    embedded,
                    "named",
                    fell_back=index > 0 or bool(font_url),
                )
            except (FontFetchError, httpx.HTTPError) as e:
                log_event(logger, "font_fallback", level="warning", requested=candidate.value,
                          fallback=DEFAULT_FONT.value if candidate != DEFAULT_FONT else "system",
                          reason=str(e))
        return self.system(DEFAULT_FONT, fell_back=True)
