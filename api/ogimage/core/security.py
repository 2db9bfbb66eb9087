from __future__ import annotations

import hashlib
import hmac
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from .config import settings
from .structured_logging import LoggerFactory

logger = LoggerFactory.get_logger(__name__)

API_KEY_PREFIX = "eog"
API_KEY_RE = re.compile(r"^eog_([a-z0-9]{8,32})_([A-Za-z0-9_-]{16,128})$")
SESSION_TOKEN_TYPE = "session"
SESSION_TTL = timedelta(days=7)


class CredentialError(Exception):
    """A presented credential could not be verified."""

    def __init__(self, reason: str, kid: Optional[str] = None):
        self.reason = reason
        self.kid = kid
        super().__init__(reason)


@dataclass
class ParsedApiKey:
    kid: str
    secret: str
    raw: str


@dataclass
class SessionClaims:
    account_id: str
    expires_at: datetime


def _signing_secret() -> str:
    if not settings.jwt_secret:
        raise CredentialError("signing secret not configured")
    return settings.jwt_secret


def parse_api_key(raw: str) -> ParsedApiKey:
    match = API_KEY_RE.match(raw or "")
    if not match:
        raise CredentialError("malformed api key")
    return ParsedApiKey(kid=match.group(1), secret=match.group(2), raw=raw)


def hash_api_key(raw: str) -> str:
    """HMAC-SHA256 of the full key under the service secret, hex encoded."""
    return hmac.new(_signing_secret().encode("utf-8"), raw.encode("utf-8"), hashlib.sha256).hexdigest()


def api_key_matches(raw: str, stored_hash: str) -> bool:
    return hmac.compare_digest(hash_api_key(raw), stored_hash)


def generate_api_key() -> ParsedApiKey:
    """Mint a new key. Only the hash is ever persisted."""
    kid = secrets.token_hex(8)
    secret = secrets.token_urlsafe(24)
    return ParsedApiKey(kid=kid, secret=secret, raw=f"{API_KEY_PREFIX}_{kid}_{secret}")


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def issue_session_token(account_id: str, ttl: timedelta = SESSION_TTL) -> str:
    """Sign a dashboard session token (HS256)."""
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "account_id": account_id,
        "type": SESSION_TOKEN_TYPE,
        "iat": now,
        "exp": now + ttl,
    }
    return jwt.encode(payload, _signing_secret(), algorithm="HS256")


def verify_session_token(token: str) -> SessionClaims:
    """Verify a session cookie and return its claims.

    Raises:
        CredentialError: if the token is expired, tampered with, or not a
        session token.
    """
    try:
        claims = jwt.decode(
            token,
            _signing_secret(),
            algorithms=["HS256"],
            options={"verify_signature": True, "verify_exp": True, "require": ["exp", "account_id"]},
        )
    except jwt.ExpiredSignatureError:
        raise CredentialError("session expired")
    except jwt.InvalidTokenError as e:
        logger.debug("Session token rejected", error=str(e))
        raise CredentialError("invalid session")

    if claims.get("type") != SESSION_TOKEN_TYPE or not claims.get("account_id"):
        raise CredentialError("not a session token")
    return SessionClaims(
        account_id=str(claims["account_id"]),
        expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
    )


def admin_secret_matches(presented: Optional[str]) -> bool:
    if not settings.admin_secret or not presented:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), settings.admin_secret.encode("utf-8"))
