"""
JWT creation and parsing.

All tokens the service hands out are HS256 JWTs told apart by audience:

- ``auth``: the bearer token for API calls, subject is the username
- ``verify``: email verification code, subject is the user id
- ``forgot-password``: password reset code, subject is the email
- ``change-email``: email change code, subject is the user id
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt
from fastapi import Response

from accounts.config import settings
from accounts.exceptions import UnauthorizedException
from accounts.users.models import now_millis

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
TOKEN_PREFIX = "Bearer "

AUTH_AUDIENCE = "auth"
VERIFY_AUDIENCE = "verify"
FORGOT_PASSWORD_AUDIENCE = "forgot-password"
CHANGE_EMAIL_AUDIENCE = "change-email"


def hours_to_millis(hours: int) -> int:
    return hours * 60 * 60 * 1000


class JwtService:
    """Signs and verifies tokens with the configured secret."""

    def __init__(self, secret: Optional[str] = None):
        self._secret = secret
        logger.info("Created")

    @property
    def secret(self) -> str:
        return self._secret or settings.jwt_secret

    def create_token(
        self,
        aud: str,
        subject: str,
        expiration_millis: int,
        claims: Optional[dict[str, Any]] = None,
    ) -> str:
        """Create a signed token for ``subject``, valid for ``expiration_millis``."""
        issued_millis = now_millis()
        issued_at = datetime.fromtimestamp(issued_millis / 1000, tz=timezone.utc)

        payload = dict(claims or {})
        payload.update(
            {
                "aud": aud,
                "sub": str(subject),
                "iat": issued_at,
                "exp": issued_at + timedelta(milliseconds=expiration_millis),
                # iat only has second precision
                "iat_ms": issued_millis,
            }
        )
        return jwt.encode(payload, self.secret, algorithm=JWT_ALGORITHM)

    def parse_token(self, token: str, aud: str, issued_after: Optional[int] = None) -> dict[str, Any]:
        """
        Decode and validate a token of the given audience.

        Raises UnauthorizedException if the token is malformed, expired,
        meant for another audience, or was issued before ``issued_after``
        (epoch millis).
        """
        if token and token.startswith(TOKEN_PREFIX):
            token = token[len(TOKEN_PREFIX):]

        try:
            claims = jwt.decode(token, self.secret, algorithms=[JWT_ALGORITHM], audience=aud)
        except jwt.ExpiredSignatureError:
            logger.debug("Token expired")
            raise UnauthorizedException("Expired token")
        except jwt.InvalidTokenError as e:
            logger.debug(f"Invalid token: {e}")
            raise UnauthorizedException("Invalid token")

        if issued_after is not None:
            ensure_issued_after(claims, issued_after)

        return claims

    def add_auth_header(self, response: Response, username: str, expiration_millis: int) -> str:
        """Put a fresh auth token for ``username`` into the response headers."""
        token = self.create_token(AUTH_AUDIENCE, username, expiration_millis)
        response.headers[settings.auth_header] = TOKEN_PREFIX + token
        return token


def ensure_issued_after(claims: dict[str, Any], issued_after: int) -> None:
    """Reject tokens minted before ``issued_after`` (epoch millis)."""
    issued_millis = claims.get("iat_ms")
    if issued_millis is None:
        issued_millis = int(claims.get("iat", 0)) * 1000
    if int(issued_millis) < issued_after:
        logger.debug("Obsolete token")
        raise UnauthorizedException("Obsolete token")


_jwt_service: Optional[JwtService] = None


def get_jwt_service() -> JwtService:
    """Get the shared JwtService (also usable as a FastAPI dependency)."""
    global _jwt_service
    if _jwt_service is None:
        _jwt_service = JwtService()
    return _jwt_service
