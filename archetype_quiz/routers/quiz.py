import logging
from typing import List

from fastapi import APIRouter, Depends, Request, status

from archetype_quiz.auth.schemas import ErrorResponse, SuccessResponse
from archetype_quiz.errors import (
    DuplicateSubmissionError,
    QuizValidationError,
    RateLimitExceeded,
    StorageUnavailable,
)
from archetype_quiz.routers.dependencies import (
    client_identity,
    get_lifecycle_manager,
    http_error,
    internal_error,
    rate_limited,
)
from archetype_quiz.schemas.quiz import QuestionOut, SessionRequest, SubmitRequest
from archetype_quiz.scoring.models import ScoreResult
from archetype_quiz.services.lifecycle import SubmissionLifecycleManager

router = APIRouter(prefix="/quiz", tags=["Quiz"])
logger = logging.getLogger(__name__)


@router.get("/questions", response_model=List[QuestionOut], summary="Question bank")
async def get_questions(manager: SubmissionLifecycleManager = Depends(get_lifecycle_manager)):
    return manager.get_questions()


@router.post(
    "/submit",
    response_model=ScoreResult,
    summary="Score and store a completed quiz",
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse, "description": "Missing answers, email or name"},
        status.HTTP_409_CONFLICT: {"model": ErrorResponse, "description": "Email already used for quiz"},
        status.HTTP_429_TOO_MANY_REQUESTS: {"model": ErrorResponse, "description": "Too many attempts from this client"},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse, "description": "Internal server error"},
    },
)
async def submit_quiz(
    payload: SubmitRequest,
    request: Request,
    manager: SubmissionLifecycleManager = Depends(get_lifecycle_manager),
):
    """
    Scores the answers, stores one submission per email and clears the
    email's saved session. Attempts are rate limited per client IP.
    """
    client_id = client_identity(request)
    try:
        return await manager.submit(payload.answers, payload.email, payload.name, client_id)
    except RateLimitExceeded as e:
        raise rate_limited(e)
    except QuizValidationError as e:
        raise http_error(status.HTTP_400_BAD_REQUEST, e)
    except DuplicateSubmissionError as e:
        raise http_error(status.HTTP_409_CONFLICT, e)
    except StorageUnavailable:
        raise internal_error()
    except Exception as e:
        logger.exception(f"Unexpected error during quiz submission from {client_id}: {e}")
        raise internal_error()


@router.post(
    "/session",
    response_model=SuccessResponse,
    summary="Save in-progress quiz state",
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse, "description": "Missing email"},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse, "description": "Internal server error"},
    },
)
async def save_session(
    payload: SessionRequest,
    request: Request,
    manager: SubmissionLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        await manager.save_session(payload.email, payload.progress, payload.answers, client_identity(request))
    except QuizValidationError as e:
        raise http_error(status.HTTP_400_BAD_REQUEST, e)
    except StorageUnavailable:
        raise internal_error()
    return SuccessResponse()
