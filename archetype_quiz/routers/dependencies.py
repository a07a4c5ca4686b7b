from fastapi import HTTPException, Request, status

from archetype_quiz.auth.schemas import ErrorDetail
from archetype_quiz.errors import QuizError, RateLimitExceeded
from archetype_quiz.services.lifecycle import SubmissionLifecycleManager

INTERNAL_ERROR_DETAIL = ErrorDetail(code="INTERNAL_ERROR", message="Internal server error")


def get_lifecycle_manager(request: Request) -> SubmissionLifecycleManager:
    """The manager is built once in create_app and parked on app.state."""
    return request.app.state.lifecycle


def client_identity(request: Request) -> str:
    """First X-Forwarded-For hop, else the socket peer, else "unknown"."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def http_error(status_code: int, error: QuizError, headers=None) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail=ErrorDetail(code=error.code, message=error.message).model_dump(),
        headers=headers,
    )


def rate_limited(error: RateLimitExceeded) -> HTTPException:
    detail = ErrorDetail(code=error.code, message=error.message).model_dump()
    headers = None
    if error.reset_at is not None:
        detail["resetTime"] = int(error.reset_at * 1000)
    if error.retry_after is not None:
        headers = {"Retry-After": str(error.retry_after)}
    return HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=detail, headers=headers)


def internal_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=INTERNAL_ERROR_DETAIL.model_dump(),
    )
