# archetype_quiz/middleware/auth.py
import logging
from typing import Sequence, Set

from fastapi import HTTPException, Request, Response, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse

from archetype_quiz.auth.jwt import verify_admin, TokenExpired, TokenInvalid
from archetype_quiz.auth.schemas import AuthenticatedAdmin, ErrorDetail

_log = logging.getLogger(__name__)

# --- Error Definitions ---
AUTH_ERROR_DETAIL_MISSING = ErrorDetail(code="AUTH_001", message="Authentication credentials were not provided.")
AUTH_ERROR_DETAIL_EXPIRED = ErrorDetail(code="AUTH_002", message="Token has expired.")
AUTH_ERROR_DETAIL_NOT_ADMIN = ErrorDetail(code="AUTH_003", message="Unauthorized")

# auto_error=False means it returns None if no header, instead of raising HTTPException
bearer_scheme = HTTPBearer(auto_error=False, description="JWT admin token.")


def _unauthorized(detail: ErrorDetail, error_description: str | None = None) -> JSONResponse:
    www_authenticate = "Bearer"
    if error_description:
        www_authenticate = f"Bearer error=\"invalid_token\", error_description=\"{error_description}\""
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": detail.model_dump()},
        headers={"WWW-Authenticate": www_authenticate},
    )


class AdminAuthenticationMiddleware(BaseHTTPMiddleware):
    """
    Guards the admin API with bearer tokens.

    - Only paths under one of `protected_prefixes` are checked.
    - `excluded_paths` (e.g. the login endpoint) and OPTIONS requests pass through.
    - On success attaches AuthenticatedAdmin to request.state.admin.
    - Returns a 401 JSON response when the token is missing, invalid, expired,
      or does not carry the admin claim.
    """
    def __init__(
        self,
        app,
        protected_prefixes: Sequence[str] = ("/api/admin",),
        excluded_paths: Sequence[str] | Set[str] | None = None,
    ):
        super().__init__(app)
        self.protected_prefixes = tuple(protected_prefixes)
        self.excluded_paths = set(excluded_paths) if excluded_paths else set()
        _log.info(f"Admin auth middleware initialized. Protected: {self.protected_prefixes}, excluded: {sorted(self.excluded_paths)}")

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request.state.admin = None
        path = request.url.path

        if not path.startswith(self.protected_prefixes) or path in self.excluded_paths:
            return await call_next(request)

        # Allow OPTIONS requests for CORS preflight without authentication
        if request.method == "OPTIONS":
            return await call_next(request)

        credentials: HTTPAuthorizationCredentials | None = await bearer_scheme(request)
        if not credentials:
            _log.warning(f"Admin auth failed: No token provided for path {path}")
            return _unauthorized(AUTH_ERROR_DETAIL_MISSING)

        try:
            admin = verify_admin(credentials.credentials)
        except TokenExpired as e:
            _log.warning(f"Admin auth failed: Token expired for path {path}")
            return _unauthorized(AUTH_ERROR_DETAIL_EXPIRED, e.message)
        except TokenInvalid as e:
            _log.warning(f"Admin auth failed: Token invalid for path {path}. Code: {e.code}, Msg: {e.message}")
            return _unauthorized(ErrorDetail(code=e.code, message=e.message), e.message)

        if not admin.is_admin:
            _log.warning(f"Admin auth failed: Token for '{admin.username}' lacks admin claim at {path}")
            return _unauthorized(AUTH_ERROR_DETAIL_NOT_ADMIN)

        request.state.admin = admin
        _log.debug(f"Admin auth success: {admin.username} accessed {path}")
        return await call_next(request)


async def require_admin(request: Request) -> AuthenticatedAdmin:
    """
    FastAPI dependency for admin-only routes.

    Relies on AdminAuthenticationMiddleware having populated
    `request.state.admin`; anything else is treated as unauthenticated.
    """
    admin: AuthenticatedAdmin | None = getattr(request.state, "admin", None)
    if not isinstance(admin, AuthenticatedAdmin) or not admin.is_admin:
        _log.warning(f"Admin check failed: no authenticated admin on {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=AUTH_ERROR_DETAIL_NOT_ADMIN.model_dump(),
            headers={"WWW-Authenticate": "Bearer"},
        )
    return admin
