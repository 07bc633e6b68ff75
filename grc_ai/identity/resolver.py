import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt

from grc_ai.config.settings import Settings
from grc_ai.core.errors import ProfileNotFoundError, UnauthenticatedError
from grc_ai.storage.base import Store

logger = logging.getLogger("grc.identity")


@dataclass(frozen=True)
class CallerIdentity:
    user_id: str
    tenant_id: str


class IdentityResolver:
    """Turn an ``Authorization`` header into the caller and their tenant."""

    def __init__(self, settings: Settings, store: Store):
        self._secret = settings.jwt_secret
        self._audience = settings.jwt_audience_or_none
        self._store = store

    def resolve(self, authorization: str | None) -> CallerIdentity:
        if not authorization:
            raise UnauthenticatedError("No authorization header")
        if not authorization.startswith("Bearer "):
            raise UnauthenticatedError("Invalid authorization")

        token = authorization.removeprefix("Bearer ").strip()
        if not token:
            raise UnauthenticatedError("Invalid authorization")

        user_id = self._verify(token)
        profile = self._store.get_profile(user_id)
        if profile is None or not profile.tenant_id:
            raise ProfileNotFoundError("User has no tenant")

        return CallerIdentity(user_id=user_id, tenant_id=profile.tenant_id)

    def _verify(self, token: str) -> str:
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=["HS256"],
                audience=self._audience,
                options={"require": ["sub", "exp"], "verify_aud": self._audience is not None},
            )
        except jwt.InvalidTokenError as exc:
            logger.info("caller_token_rejected", extra={"error": type(exc).__name__})
            raise UnauthenticatedError("Invalid authorization") from exc

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject.strip():
            raise UnauthenticatedError("Invalid authorization")
        return subject.strip()


def issue_token(
    settings: Settings, user_id: str, expires_in_s: int = 3600, **claims: object
) -> str:
    """Mint a caller token; used by local tooling and tests."""
    payload: dict[str, object] = {
        "sub": user_id,
        "exp": datetime.now(UTC) + timedelta(seconds=expires_in_s),
        **claims,
    }
    audience = settings.jwt_audience_or_none
    if audience is not None:
        payload.setdefault("aud", audience)
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")
