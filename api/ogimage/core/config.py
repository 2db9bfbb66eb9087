from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict


def getenv(name: str, default: str | None = None) -> str | None:
    v = os.getenv(name, default)
    return v


def getbool(name: str, default: str = "false") -> bool:
    return (getenv(name, default) or default).strip().lower() == "true"


def _plan_limits() -> Dict[str, int]:
    # PLAN_LIMITS="free=1,starter=1000,pro=10000"
    raw = getenv("PLAN_LIMITS", "free=1,starter=1000,pro=10000") or ""
    limits: Dict[str, int] = {}
    for item in raw.split(","):
        name, _, value = item.partition("=")
        if name.strip() and value.strip().isdigit():
            limits[name.strip().lower()] = int(value.strip())
    limits.setdefault("free", 1)
    return limits


@dataclass
class Settings:
    # Service
    service_name: str = getenv("SERVICE_NAME", "ogimage-api") or "ogimage-api"
    service_version: str = getenv("SERVICE_VERSION", "1.0.0") or "1.0.0"
    service_env: str = getenv("SERVICE_ENV", "dev") or "dev"
    log_level: str = getenv("LOG_LEVEL", "INFO") or "INFO"

    # Auth
    require_auth_flag: bool = getbool("REQUIRE_AUTH")
    jwt_secret: str | None = getenv("JWT_SECRET")
    admin_secret: str | None = getenv("ADMIN_SECRET")
    session_cookie_name: str = getenv("SESSION_COOKIE_NAME", "og_session") or "og_session"

    # Storage
    kv_backend: str = getenv("KV_BACKEND", "auto") or "auto"
    redis_url: str = getenv("REDIS_URL", "redis://localhost:6379/0") or "redis://localhost:6379/0"
    usage_ttl_seconds: int = int(getenv("USAGE_TTL_SECONDS", "3024000") or "3024000")  # 35 days

    # Quota
    plan_limits: Dict[str, int] = field(default_factory=_plan_limits)

    # Cache
    cache_version: str | None = getenv("CACHE_VERSION")
    edge_cache_status_header: str = getenv("EDGE_CACHE_STATUS_HEADER", "CF-Cache-Status") or "CF-Cache-Status"

    # Fonts
    font_fetch_enabled: bool = getbool("FONT_FETCH_ENABLED", "true")
    font_fetch_timeout: float = float(getenv("FONT_FETCH_TIMEOUT", "5") or "5")
    font_fetch_attempts: int = int(getenv("FONT_FETCH_ATTEMPTS", "2") or "2")
    max_font_bytes: int = int(getenv("MAX_FONT_BYTES", str(5 * 1024 * 1024)) or str(5 * 1024 * 1024))

    # Rendering
    raster_enabled: bool = getbool("RASTER_ENABLED", "true")

    # Security & policy
    cors_allow_origins: str | None = getenv("CORS_ALLOW_ORIGINS")

    @property
    def is_production(self) -> bool:
        return self.service_env in ["prod", "production"]

    @property
    def require_auth(self) -> bool:
        return self.is_production or self.require_auth_flag

    def plan_limit(self, plan: str) -> int:
        return self.plan_limits.get(plan, self.plan_limits["free"])

    def is_paid_plan(self, plan: str) -> bool:
        return plan != "free" and plan in self.plan_limits


settings = Settings()
