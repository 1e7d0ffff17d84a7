"""Bearer token verification.

Tokens are issued by the external auth service; this side only verifies them
and turns the claims into a ``Principal``.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

import jwt

from security.rbac import Principal, Role

log = logging.getLogger(__name__)


class TokenError(Exception):
    pass


@dataclass(frozen=True)
class AuthConfig:
    secret: str
    algorithm: str = "HS256"
    leeway_seconds: int = 0

    @classmethod
    def from_mapping(cls, config) -> "AuthConfig":
        secret = config.get("JWT_SECRET")
        if not secret:
            raise RuntimeError("JWT_SECRET is not configured")
        return cls(
            secret=secret,
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
            leeway_seconds=int(config.get("JWT_LEEWAY_SECONDS", 0)),
        )


class TokenVerifier:
    def __init__(self, config: AuthConfig):
        self.config = config

    def decode(self, token: str) -> Principal:
        try:
            claims = jwt.decode(
                token,
                self.config.secret,
                algorithms=[self.config.algorithm],
                leeway=self.config.leeway_seconds,
                options={"require": ["exp"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenError("Token has expired")
        except jwt.InvalidTokenError as exc:
            log.warning("Rejected bearer token: %s", exc)
            raise TokenError("Invalid token")

        user_id = claims.get("id") or claims.get("sub")
        if not user_id:
            raise TokenError("Invalid token")

        try:
            role = Role(claims.get("role"))
        except ValueError:
            log.warning("Rejected bearer token with unknown role %r", claims.get("role"))
            raise TokenError("Invalid token")

        return Principal(user_id=str(user_id), role=role, tenant_id=claims.get("tenant_id"))

    def issue(self, user_id: str, role: Role, tenant_id: str | None, expires_in: int = 3600) -> str:
        """Sign a token with the shared secret. Used by the dev CLI and tests."""
        payload = {
            "id": user_id,
            "role": Role(role).value,
            "tenant_id": tenant_id,
            "exp": datetime.utcnow() + timedelta(seconds=expires_in),
        }
        return jwt.encode(payload, self.config.secret, algorithm=self.config.algorithm)
