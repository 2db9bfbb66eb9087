"""Pydantic models for requests, stored records and response bodies."""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Type
from urllib.parse import urlparse

from pydantic import BaseModel, Field, validator


class Theme(str, Enum):
    """Colour themes available to every template."""
    LIGHT = "light"
    DARK = "dark"
    BLUE = "blue"
    GREEN = "green"
    PURPLE = "purple"


class Font(str, Enum):
    """Named fonts served from Google Fonts."""
    INTER = "inter"
    ROBOTO = "roboto"
    PLAYFAIR = "playfair"
    OPENSANS = "opensans"


class OutputFormat(str, Enum):
    PNG = "png"
    SVG = "svg"


class TemplateKind(str, Enum):
    """Built-in template layouts."""
    DEFAULT = "default"
    BLOG = "blog"
    PRODUCT = "product"
    EVENT = "event"
    QUOTE = "quote"
    MINIMAL = "minimal"
    NEWS = "news"
    TECH = "tech"
    PODCAST = "podcast"
    PORTFOLIO = "portfolio"
    COURSE = "course"


TEXT_FIELDS = (
    "title",
    "description",
    "author",
    "price",
    "date",
    "location",
    "quote",
    "role",
    "subtitle",
    "category",
    "version",
    "status",
    "episode",
    "duration",
    "name",
    "instructor",
    "level",
    "emoji",
)


MAX_TEXT_BYTES = 200
MAX_FONT_URL_LENGTH = 2048
FONT_EXTENSIONS = (".ttf", ".otf", ".woff", ".woff2")
TEMPLATE_ID_RE = re.compile(r"^[a-z0-9-]{10,64}$")
FONT_URL_MESSAGE = "Invalid fontUrl parameter. Must be a valid HTTPS URL ending in .ttf, .otf, .woff or .woff2"


class ParamError(ValueError):
    """A query parameter rejected by ``RenderRequest``, keyed by its query name."""

    def __init__(self, param: str, message: str):
        super().__init__(message)
        self.param = param
        self.message = message


def _blank(v) -> bool:
    return v is None or (isinstance(v, str) and v.strip() == "")


def _enum_value(v, name: str, enum_type: Type[Enum], default: Enum):
    if _blank(v):
        return default
    if isinstance(v, enum_type):
        return v
    try:
        return enum_type(str(v).strip().lower())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_type)
        raise ParamError(name, f"Invalid {name} parameter. Must be one of: {allowed}")


class RenderRequest(BaseModel):
    """Validated representation of one image request.

    Blank query values count as absent. Free-text fields are measured in
    UTF-8 bytes before that, so a long run of whitespace is still rejected.
    """

    fields: Dict[str, str] = Field(default_factory=dict, description="Free-text fields by name")
    template: TemplateKind = TemplateKind.DEFAULT
    theme: Theme = Theme.LIGHT
    font: Font = Font.INTER
    format: OutputFormat = OutputFormat.PNG
    template_id: Optional[str] = Field(None, description="Stored template id (query name templateId)")
    font_url: Optional[str] = Field(None, description="HTTPS font file URL (query name fontUrl)")
    fallback: bool = True

    @validator("fields", pre=True)
    def validate_fields(cls, v):
        if v is None:
            return {}
        kept = {}
        for name, value in v.items():
            if name not in TEXT_FIELDS:
                continue
            if len(value.encode("utf-8")) > MAX_TEXT_BYTES:
                raise ParamError(name, f"{name} parameter too long (max {MAX_TEXT_BYTES} bytes)")
            if value.strip():
                kept[name] = value
        return kept

    @validator("template", pre=True)
    def validate_template(cls, v):
        return _enum_value(v, "template", TemplateKind, TemplateKind.DEFAULT)

    @validator("theme", pre=True)
    def validate_theme(cls, v):
        return _enum_value(v, "theme", Theme, Theme.LIGHT)

    @validator("font", pre=True)
    def validate_font(cls, v):
        return _enum_value(v, "font", Font, Font.INTER)

    @validator("format", pre=True)
    def validate_format(cls, v):
        return _enum_value(v, "format", OutputFormat, OutputFormat.PNG)

    @validator("template_id", pre=True)
    def validate_template_id(cls, v):
        if _blank(v):
            return None
        if not TEMPLATE_ID_RE.match(v):
            raise ParamError("templateId", "Invalid templateId parameter. Must be 10-64 characters of a-z, 0-9 or '-'")
        return v

    @validator("font_url", pre=True)
    def validate_font_url(cls, v):
        """HTTPS only, with a font file extension on the path."""
        if _blank(v):
            return None
        v = v.strip()
        if len(v) > MAX_FONT_URL_LENGTH:
            raise ParamError("fontUrl", FONT_URL_MESSAGE)
        try:
            parsed = urlparse(v)
        except ValueError:
            raise ParamError("fontUrl", FONT_URL_MESSAGE)
        if parsed.scheme != "https" or not parsed.netloc:
            raise ParamError("fontUrl", FONT_URL_MESSAGE)
        if not parsed.path.lower().endswith(FONT_EXTENSIONS):
            raise ParamError("fontUrl", FONT_URL_MESSAGE)
        return v

    @validator("fallback", pre=True)
    def validate_fallback(cls, v):
        if _blank(v):
            return True
        if isinstance(v, bool):
            return v
        flag = v.strip().lower()
        if flag not in ("true", "false"):
            raise ParamError("fallback", "Invalid fallback parameter. Must be one of: true, false")
        return flag == "true"

    @property
    def wants_raster(self) -> bool:
        return self.format == OutputFormat.PNG


class TemplateRecord(BaseModel):
    """A stored custom template, owned by one account."""

    id: str
    account: str
    name: str
    slug: str = "default"
    source: str = ""
    version: int = 1
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    published: bool = False
    defaults: Dict[str, str] = Field(default_factory=dict)


class ApiKeyRecord(BaseModel):
    """Server-side half of an ``eog_<kid>_<secret>`` API key."""

    account: str
    hash: str
    name: str = "default"
    revoked: bool = False
    created: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_used: Optional[datetime] = None


class AccountRecord(BaseModel):
    id: str
    plan: str = "free"
    email_hash: Optional[str] = None


class OverageRecord(BaseModel):
    """Per-account, per-UTC-day usage beyond a paid plan's monthly quota."""

    account: str
    day: str
    count: int = 0
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


YYYYMM_RE = re.compile(r"^\d{6}$")


class UsageResetRequest(BaseModel):
    kid: str = Field(..., min_length=1, max_length=64)
    yyyymm: Optional[str] = None

    @validator("kid", pre=True)
    def strip_kid(cls, v):
        return v.strip() if isinstance(v, str) else v

    @validator("yyyymm")
    def validate_yyyymm(cls, v):
        if v is None:
            return v
        if not YYYYMM_RE.match(v):
            raise ValueError("yyyymm must be 6 digits")
        year, month = int(v[:4]), int(v[4:])
        if not 2000 <= year <= 2100 or not 1 <= month <= 12:
            raise ValueError("yyyymm is out of range")
        return v


class UsageResetResponse(BaseModel):
    ok: bool = True
    kid: str
    yyyymm: str
    previous: int


class UsageResponse(BaseModel):
    kid: str
    yyyymm: str
    count: int


class HealthResponse(BaseModel):
    service: str
    version: str
    status: str = "ok"
    request_id: str
    timestamp: str


class ErrorResponse(BaseModel):
    error: str
    request_id: str

