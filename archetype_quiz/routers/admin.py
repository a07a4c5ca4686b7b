import logging

from fastapi import APIRouter, Depends, Response, status

from archetype_quiz.auth.schemas import (
    AdminLoginRequest,
    AuthenticatedAdmin,
    ErrorResponse,
    SuccessResponse,
    TokenResponse,
)
from archetype_quiz.errors import AdminUnauthorized, QuizValidationError, StorageUnavailable
from archetype_quiz.middleware.auth import require_admin
from archetype_quiz.routers.dependencies import get_lifecycle_manager, http_error, internal_error
from archetype_quiz.schemas.quiz import AnalyticsResponse, ResetRequest, SubmissionListResponse
from archetype_quiz.services.export import CSV_FILENAME
from archetype_quiz.services.lifecycle import SubmissionLifecycleManager

_log = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["Admin"])

UNAUTHORIZED_RESPONSE = {status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse, "description": "Missing or invalid admin token"}}


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Exchange admin credentials for a bearer token",
    responses={status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse, "description": "Invalid credentials"}},
)
async def admin_login(
    credentials: AdminLoginRequest,
    manager: SubmissionLifecycleManager = Depends(get_lifecycle_manager),
):
    """
    Accepts the admin identifier as `identifier`, `username` or `email`.
    The returned token is valid for 24 hours.
    """
    try:
        token = await manager.authenticate_admin(credentials.resolved_identifier(), credentials.password)
    except AdminUnauthorized as e:
        raise http_error(status.HTTP_401_UNAUTHORIZED, e, headers={"WWW-Authenticate": "Bearer"})
    except StorageUnavailable:
        raise internal_error()
    return TokenResponse(token=token)


@router.post(
    "/reset",
    response_model=SuccessResponse,
    summary="Delete a user's submission and session",
    responses={
        **UNAUTHORIZED_RESPONSE,
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse, "description": "Missing email"},
    },
)
async def reset_user(
    payload: ResetRequest,
    admin: AuthenticatedAdmin = Depends(require_admin),
    manager: SubmissionLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        await manager.reset_user(payload.email)
    except QuizValidationError as e:
        raise http_error(status.HTTP_400_BAD_REQUEST, e)
    except StorageUnavailable:
        raise internal_error()
    _log.info(f"Admin '{admin.username}' reset quiz state for {payload.email}")
    return SuccessResponse()


@router.get("/analytics", response_model=AnalyticsResponse, responses=UNAUTHORIZED_RESPONSE)
async def get_analytics(
    admin: AuthenticatedAdmin = Depends(require_admin),
    manager: SubmissionLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        return await manager.get_analytics()
    except StorageUnavailable:
        raise internal_error()


@router.get("/submissions", response_model=SubmissionListResponse, responses=UNAUTHORIZED_RESPONSE)
async def list_submissions(
    admin: AuthenticatedAdmin = Depends(require_admin),
    manager: SubmissionLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        return await manager.list_submissions()
    except StorageUnavailable:
        raise internal_error()


@router.get(
    "/export",
    response_class=Response,
    responses={**UNAUTHORIZED_RESPONSE, status.HTTP_200_OK: {"content": {"text/csv": {}}}},
)
async def export_submissions(
    admin: AuthenticatedAdmin = Depends(require_admin),
    manager: SubmissionLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        body = await manager.export_csv()
    except StorageUnavailable:
        raise internal_error()
    _log.info(f"Admin '{admin.username}' exported submissions")
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{CSV_FILENAME}"'},
    )
