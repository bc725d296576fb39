"""
JWT issuance and verification.

Three token kinds, each signed with its own HS256 secret and tagged with a
``type`` claim so one kind can never be accepted in place of another:

- access   (15 min)  - sub, role, isEmailVerified
- refresh  (7 days)  - sub, jti, rememberMe; also checked against the stored hash
- reset    (1 hour)  - sub; embedded in the password-reset link
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

import jwt

from config import JWTSettings
from schemas.models.user import UserDoc
from shared.datetime_utils import Clock, utcnow
from shared.generators import generate_token_id

_ALGORITHM = "HS256"

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"
TOKEN_TYPE_RESET = "reset"


class TokenService:
    def __init__(self, settings: JWTSettings, clock: Clock = utcnow) -> None:
        self._settings = settings
        self._clock = clock
        self._secrets = {
            TOKEN_TYPE_ACCESS: settings.jwt_secret,
            TOKEN_TYPE_REFRESH: settings.jwt_refresh_secret,
            TOKEN_TYPE_RESET: settings.password_reset_secret,
        }
        self._ttls = {
            TOKEN_TYPE_ACCESS: settings.access_token_ttl_seconds,
            TOKEN_TYPE_REFRESH: settings.refresh_token_ttl_seconds,
            TOKEN_TYPE_RESET: settings.password_reset_token_ttl_seconds,
        }

    def _secret(self, token_type: str) -> str:
        secret = self._secrets[token_type]
        if not secret:
            raise RuntimeError(f"signing secret for {token_type} tokens is not configured")
        return secret

    def _encode(self, token_type: str, subject: str, **extra: Any) -> str:
        now = self._clock()
        claims = {
            "iss": self._settings.jwt_issuer,
            "aud": self._settings.jwt_audience,
            "sub": subject,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=self._ttls[token_type])).timestamp()),
            "type": token_type,
            **extra,
        }
        return jwt.encode(claims, self._secret(token_type), algorithm=_ALGORITHM)

    def _decode(self, token: str, token_type: str) -> dict:
        """Verify signature, expiry, issuer, audience and type.

        Expiry is checked against the injected clock rather than PyJWT's
        wall clock, so issuing and verifying always agree on "now".

        Raises:
            jwt.InvalidTokenError (or a subclass) on any failure.
        """
        claims = jwt.decode(
            token,
            self._secret(token_type),
            algorithms=[_ALGORITHM],
            audience=self._settings.jwt_audience,
            issuer=self._settings.jwt_issuer,
            options={
                "require": ["exp", "sub", "type"],
                "verify_exp": False,
                "verify_iat": False,
            },
        )
        if claims.get("type") != token_type:
            raise jwt.InvalidTokenError(f"expected a {token_type} token")
        if int(claims["exp"]) <= int(self._clock().timestamp()):
            raise jwt.ExpiredSignatureError("Signature has expired")
        return claims

    def issue_access_token(self, user: UserDoc) -> str:
        return self._encode(
            TOKEN_TYPE_ACCESS,
            str(user.id),
            role=user.role,
            isEmailVerified=user.is_email_verified,
        )

    def issue_refresh_token(self, user: UserDoc, remember_me: bool = False) -> str:
        # jti keeps two tokens issued in the same second distinct
        return self._encode(
            TOKEN_TYPE_REFRESH,
            str(user.id),
            jti=generate_token_id(),
            rememberMe=remember_me,
        )

    def issue_reset_token(self, user: UserDoc) -> str:
        return self._encode(TOKEN_TYPE_RESET, str(user.id))

    def verify_access_token(self, token: str) -> dict:
        return self._decode(token, TOKEN_TYPE_ACCESS)

    def verify_refresh_token(self, token: str) -> dict:
        return self._decode(token, TOKEN_TYPE_REFRESH)

    def verify_reset_token(self, token: str) -> dict:
        return self._decode(token, TOKEN_TYPE_RESET)
