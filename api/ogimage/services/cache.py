"""ETag derivation and cache-version invalidation.

Every successful image is served ``public, immutable`` for a year, so the
ETag must change whenever the rendered bytes could. It is a digest of the
normalized parameters plus the optional cache version.
"""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Dict, Mapping, Optional

from .validation import CACHE_VERSION_PARAMS

CACHE_TTL_SECONDS = 31536000
CACHE_CONTROL = f"public, immutable, max-age={CACHE_TTL_SECONDS}"
ETAG_LENGTH = 16
CACHE_VERSION_RE = re.compile(r"^[A-Za-z0-9._-]{1,32}$")
EDGE_STATUSES = ("HIT", "MISS", "EXPIRED", "STALE", "REVALIDATED")
CACHED_VERSION_HEADER = "X-Cached-Version"
# Previous representation exists but its version was not reported
UNKNOWN_EXISTING_VERSION = "existing"


def fingerprint(params: Mapping[str, str], cache_version: Optional[str] = None) -> str:
    """Quoted ETag for a normalized parameter set.

    Key order never matters; a different ``cache_version`` always yields a
    different token.
    """
    payload = json.dumps(
        {"params": dict(sorted(params.items())), "cache_version": cache_version},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return f'"{digest[:ETAG_LENGTH]}"'


def validate_cache_version(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value if CACHE_VERSION_RE.match(value) else None


def extract_cache_version(raw: Mapping[str, str], default: Optional[str] = None) -> Optional[str]:
    """The caller's ``v``/``cache_version`` wins over the operator default.

    Invalid tokens are ignored rather than rejected.
    """
    for name in CACHE_VERSION_PARAMS:
        candidate = validate_cache_version(raw.get(name))
        if candidate:
            return candidate
    return validate_cache_version(default)


def should_invalidate(incoming: Optional[str], existing: Optional[str]) -> bool:
    return bool(incoming) and bool(existing) and incoming != existing


@dataclass
class EdgeCacheState:
    status: str = "UNKNOWN"
    existing_version: Optional[str] = None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str], status_header: str) -> "EdgeCacheState":
        status = (headers.get(status_header) or "").strip().upper()
        if status not in EDGE_STATUSES:
            status = "UNKNOWN"
        existing = validate_cache_version(headers.get(CACHED_VERSION_HEADER))
        if existing is None and status == "HIT":
            existing = UNKNOWN_EXISTING_VERSION
        return cls(status=status, existing_version=existing)


@dataclass
class CacheDecision:
    etag: str
    cache_version: Optional[str]
    edge: EdgeCacheState
    invalidated: bool

    def metrics(self) -> Dict[str, object]:
        return {
            "etag": self.etag,
            "cache_status": self.edge.status,
            "cache_version": self.cache_version,
            "invalidated": self.invalidated,
        }


def decide(
    normalized: Mapping[str, str],
    raw: Mapping[str, str],
    headers: Mapping[str, str],
    default_version: Optional[str],
    status_header: str,
) -> CacheDecision:
    version = extract_cache_version(raw, default_version)
    edge = EdgeCacheState.from_headers(headers, status_header)
    return CacheDecision(
        etag=fingerprint(normalized, version),
        cache_version=version,
        edge=edge,
        invalidated=should_invalidate(version, edge.existing_version),
    )


def cache_headers(decision: CacheDecision, now: Optional[datetime] = None) -> Dict[str, str]:
    now = now or datetime.now(timezone.utc)
    headers = {
        "Cache-Control": CACHE_CONTROL,
        "ETag": decision.etag,
        "Last-Modified": format_datetime(now, usegmt=True),
        "Vary": "Accept-Encoding",
        "X-Cache-Status": decision.edge.status,
        "X-Cache-TTL": str(CACHE_TTL_SECONDS),
    }
    if decision.cache_version:
        headers["X-Cache-Version"] = decision.cache_version
    if decision.invalidated:
        headers["X-Cache-Invalidated"] = "true"
    return headers
