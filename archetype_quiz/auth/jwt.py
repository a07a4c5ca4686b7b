# archetype_quiz/auth/jwt.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from archetype_quiz.auth.schemas import AuthenticatedAdmin
from archetype_quiz.config import JwtSettings, jwt_settings

_log = logging.getLogger(__name__)


# --- Custom Exceptions ---
class TokenError(Exception):
    """Base class for token-related errors."""
    def __init__(self, message="Token error occurred", code="TOKEN_ERROR"):
        self.message = message
        self.code = code
        super().__init__(self.message)

class TokenExpired(TokenError):
    """Raised when a token's expiration time has passed."""
    def __init__(self, message="Token has expired", code="TOKEN_EXPIRED"):
        super().__init__(message, code)

class TokenInvalid(TokenError):
    """Raised when a token is invalid (bad signature, wrong format, claims etc.)."""
    def __init__(self, message="Token is invalid", code="TOKEN_INVALID"):
        super().__init__(message, code)


# --- Token Creation ---
def create_admin_token(*, username: str, settings: Optional[JwtSettings] = None) -> str:
    """Creates a signed admin access token for `username`."""
    if not username:
        raise ValueError("username cannot be empty.")
    settings = settings or jwt_settings
    now = datetime.now(timezone.utc)

    payload = {
        "sub": username,
        "admin": True,
        "exp": now + timedelta(seconds=settings.ttl_seconds),
        "iat": now,
        "nbf": now,
        "iss": settings.issuer,
        "aud": settings.audience,
        "typ": "access",
    }

    try:
        return jwt.encode(payload, settings.secret, algorithm=settings.algorithm)
    except Exception as e:
        _log.error(f"Error encoding JWT: {type(e).__name__} - {e}")
        raise RuntimeError("Failed to create token due to encoding error.")


# --- Token Decoding and Validation ---
def decode_and_validate(token: str, settings: Optional[JwtSettings] = None) -> Dict[str, Any]:
    """
    Decodes and validates an admin access token.

    Args:
        token: The JWT token string.
        settings: JWT settings to validate against; defaults to the process settings.

    Returns:
        The decoded payload dictionary.

    Raises:
        TokenExpired: If the token has expired.
        TokenInvalid: If the token is invalid (bad signature, format, claims).
    """
    if not token:
        raise TokenInvalid("Token cannot be empty.")
    settings = settings or jwt_settings

    try:
        payload = jwt.decode(
            token,
            settings.secret,
            algorithms=[settings.algorithm],
            audience=settings.audience,
            issuer=settings.issuer,
            options={"require": ["exp", "iat", "iss", "aud", "sub", "typ"]},
            # Clock skew between servers
            leeway=timedelta(seconds=30),
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpired()
    except jwt.InvalidAudienceError:
        raise TokenInvalid("Invalid audience.", code="TOKEN_INVALID_AUDIENCE")
    except jwt.InvalidIssuerError:
        raise TokenInvalid("Invalid issuer.", code="TOKEN_INVALID_ISSUER")
    except jwt.MissingRequiredClaimError as e:
        raise TokenInvalid(f"Missing required claim: {e}", code="TOKEN_MISSING_CLAIM")
    except jwt.InvalidSignatureError as e:
        raise TokenInvalid(f"Token signature verification failed: {e}", code="TOKEN_SIGNATURE_INVALID")
    except jwt.DecodeError as e:
        raise TokenInvalid(f"Token decoding failed: {e}", code="TOKEN_DECODE_ERROR")
    except jwt.InvalidTokenError as e:
        raise TokenInvalid(f"Token is invalid: {e}", code="TOKEN_GENERIC_INVALID")

    if payload.get("typ") != "access":
        raise TokenInvalid(f"Invalid token type. Expected 'access', got '{payload.get('typ')}'.", code="TOKEN_TYPE_MISMATCH")

    return payload


def verify_admin(token: str, settings: Optional[JwtSettings] = None) -> AuthenticatedAdmin:
    """
    Validates a bearer credential and reports whether it grants admin access.

    Raises the same TokenError subclasses as `decode_and_validate`.
    """
    payload = decode_and_validate(token, settings=settings)
    return AuthenticatedAdmin(username=str(payload["sub"]), is_admin=payload.get("admin") is True)
