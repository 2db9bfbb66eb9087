"""Caller identification for image requests.

Identification has no side effects beyond logging; metering happens later in
``core.quota`` once the template has been resolved.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from ..models.exceptions import UnauthorizedError
from ..services.accounts import ApiKeyStore
from .config import settings
from .security import (
    CredentialError,
    api_key_matches,
    extract_bearer_token,
    parse_api_key,
    verify_session_token,
)
from .structured_logging import LoggerFactory, account_id_var

logger = LoggerFactory.get_logger(__name__)

API_KEY = "api_key"
SESSION = "session"
ANONYMOUS = "anonymous"


@dataclass
class Caller:
    kind: str
    account_id: Optional[str] = None
    kid: Optional[str] = None

    @property
    def via_session(self) -> bool:
        return self.kind == SESSION

    @property
    def is_anonymous(self) -> bool:
        return self.kind == ANONYMOUS

    @property
    def credential_id(self) -> Optional[str]:
        """Identifier the monthly quota is counted against."""
        if self.kind == API_KEY:
            return self.kid
        if self.kind == SESSION:
            return f"session:{self.account_id}"
        return None


class CallerIdentifier:
    def __init__(self, api_keys: ApiKeyStore):
        self.api_keys = api_keys

    async def verify_api_key(self, raw: str) -> Caller:
        parsed = parse_api_key(raw)
        try:
            record = await self.api_keys.get(parsed.kid)
        except Exception as e:
            raise CredentialError(f"key lookup failed: {type(e).__name__}", kid=parsed.kid)
        if record is None:
            raise CredentialError("unknown key", kid=parsed.kid)
        if record.revoked:
            raise CredentialError("revoked key", kid=parsed.kid)
        if not api_key_matches(parsed.raw, record.hash):
            raise CredentialError("hash mismatch", kid=parsed.kid)
        return Caller(kind=API_KEY, account_id=record.account, kid=parsed.kid)

    async def identify(
        self,
        headers: Mapping[str, str],
        cookies: Mapping[str, str],
        client_ip: str,
        template_preview: bool = False,
    ) -> Caller:
        """Work out who is calling.

        Session cookies only count for stored-template previews. When the
        deployment requires auth and nothing verifies, raises
        ``UnauthorizedError``; otherwise the caller is anonymous.
        """
        if template_preview:
            session_token = cookies.get(settings.session_cookie_name)
            if session_token:
                try:
                    claims = verify_session_token(session_token)
                    account_id_var.set(claims.account_id)
                    return Caller(kind=SESSION, account_id=claims.account_id)
                except CredentialError as e:
                    logger.debug("Session cookie ignored", reason=e.reason)

        token = extract_bearer_token(headers.get("authorization"))
        if token:
            try:
                caller = await self.verify_api_key(token)
                account_id_var.set(caller.account_id)
                return caller
            except CredentialError as e:
                logger.security_event("auth_failed", "API key verification failed",
                                      kid=e.kid, ip=client_ip, reason=e.reason)
                if settings.require_auth:
                    raise UnauthorizedError("Invalid API key")
                return Caller(kind=ANONYMOUS)

        if settings.require_auth:
            raise UnauthorizedError("Authentication required")
        return Caller(kind=ANONYMOUS)
