import logging
from collections import Counter
from typing import Any, Dict, List, Mapping, Optional

from archetype_quiz.auth.crypto import verify_password
from archetype_quiz.auth.jwt import create_admin_token
from archetype_quiz.errors import (
    AdminUnauthorized,
    DuplicateSubmissionError,
    QuizValidationError,
    RateLimitExceeded,
)
from archetype_quiz.schemas.quiz import AnalyticsResponse, ArchetypeShare, SubmissionListResponse
from archetype_quiz.schemas.records import SessionRecord, SubmissionRecord, utcnow
from archetype_quiz.scoring.engine import ArchetypeEngine, percentage_of
from archetype_quiz.scoring.models import ScoreResult
from archetype_quiz.services.export import render_submissions_csv
from archetype_quiz.services.rate_limiter import RateLimiter
from archetype_quiz.services.storage import QuizStorage

logger = logging.getLogger(__name__)

RECENT_SUBMISSIONS_LIMIT = 10


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


class SubmissionLifecycleManager:
    """
    Orchestrates quiz submissions, sessions and admin views.

    Holds no persistent state of its own: submissions and sessions live in
    `storage`, attempt windows live in `rate_limiter`.
    """

    def __init__(self, engine: ArchetypeEngine, storage: QuizStorage, rate_limiter: RateLimiter):
        self.engine = engine
        self.storage = storage
        self.rate_limiter = rate_limiter

    # --- Quiz flow ---

    async def submit(
        self,
        answers: Optional[Mapping[str, Any]],
        email: Optional[str],
        name: Optional[str],
        client_id: str,
    ) -> ScoreResult:
        """
        Scores and persists a completed quiz.

        Raises:
            RateLimitExceeded: The client identity used up its attempts for the window.
            QuizValidationError: answers, email or name is missing.
            DuplicateSubmissionError: A submission already exists for the email.
            StorageUnavailable: The storage backend failed.
        """
        decision = await self.rate_limiter.hit(client_id)
        if not decision.allowed:
            raise RateLimitExceeded(reset_at=decision.reset_at, retry_after=decision.retry_after)

        email = normalize_email(email)
        name = (name or "").strip()
        if answers is None or not email or not name:
            raise QuizValidationError("Missing required fields")

        # Fast path only; the storage unique constraint is the real guard
        if await self.storage.find_submission_by_email(email) is not None:
            logger.warning(f"Duplicate submission attempt for {email} from {client_id}")
            raise DuplicateSubmissionError()

        result = self.engine.calculate_scores(answers)
        record = SubmissionRecord.from_result(
            result,
            email=email,
            name=name,
            answers=dict(answers),
            ip_address=client_id,
        )
        await self.storage.insert_submission(record)
        logger.info(f"Submission stored for {email}: {result.archetype} ({result.confidence.value})")

        try:
            await self.storage.delete_session(email)
        except Exception as e:
            logger.warning(f"Session cleanup failed for {email} after submission: {e}", exc_info=True)

        return result

    async def save_session(
        self,
        email: Optional[str],
        progress: Optional[int],
        answers: Optional[Mapping[str, Any]],
        client_id: Optional[str],
    ) -> SessionRecord:
        """Upserts in-progress state for `email`. Last write wins."""
        email = normalize_email(email)
        if not email:
            raise QuizValidationError("Missing email")

        record = SessionRecord(
            email=email,
            progress=progress or 0,
            answers=dict(answers or {}),
            last_updated=utcnow(),
            ip_address=client_id,
        )
        await self.storage.upsert_session(record)
        logger.debug(f"Session saved for {email} at progress {record.progress}")
        return record

    # --- Admin flow ---

    async def authenticate_admin(self, identifier: Optional[str], password: Optional[str]) -> str:
        """Returns an admin token for matching credentials, else raises AdminUnauthorized."""
        if not identifier or not password:
            raise AdminUnauthorized()

        identifier = identifier.strip()
        # Admin emails are stored normalized; usernames stay case-sensitive
        if "@" in identifier:
            identifier = normalize_email(identifier)
        account = await self.storage.find_admin_by_identifier(identifier)
        if account is None or not verify_password(password, account.password_hash):
            logger.warning(f"Admin login failed for identifier: {identifier}")
            raise AdminUnauthorized()

        logger.info(f"Admin logged in: {account.username}")
        return create_admin_token(username=account.username)

    async def reset_user(self, email: Optional[str]) -> None:
        """Deletes the submission and session for `email`. A no-op when neither exists."""
        email = normalize_email(email)
        if not email:
            raise QuizValidationError("Missing email")

        await self.storage.delete_submission(email)
        await self.storage.delete_session(email)
        logger.info(f"Admin reset completed for {email}")

    @staticmethod
    def summarize(submissions: List[SubmissionRecord]) -> AnalyticsResponse:
        """
        Aggregates submissions already sorted newest first.

        Distribution percentages are rounded half-up and reported as 0 when
        there are no submissions.
        """
        total = len(submissions)
        counts = Counter(sub.archetype for sub in submissions)
        distribution = [
            ArchetypeShare(archetype=archetype, count=count, percentage=percentage_of(count, total))
            for archetype, count in sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        ]
        return AnalyticsResponse(
            total_submissions=total,
            archetype_distribution=distribution,
            recent_submissions=submissions[:RECENT_SUBMISSIONS_LIMIT],
        )

    async def get_analytics(self) -> AnalyticsResponse:
        submissions = await self.storage.list_submissions(newest_first=True)
        return self.summarize(submissions)

    async def list_submissions(self) -> SubmissionListResponse:
        submissions = await self.storage.list_submissions(newest_first=True)
        return SubmissionListResponse(submissions=submissions, analytics=self.summarize(submissions))

    async def export_csv(self) -> str:
        submissions = await self.storage.list_submissions(newest_first=True)
        return render_submissions_csv(submissions)

    def get_questions(self) -> List[Dict[str, Any]]:
        return self.engine.get_questions()
