import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from archetype_quiz.db.models import AdminUser, QuizSession, Submission
from archetype_quiz.errors import DuplicateSubmissionError, StorageUnavailable
from archetype_quiz.schemas.records import AdminAccount, SessionRecord, SubmissionRecord

logger = logging.getLogger(__name__)


class QuizStorage(ABC):
    """
    Persistence boundary for submissions, sessions and admin accounts.

    Implementations must enforce email uniqueness for submissions atomically
    and raise DuplicateSubmissionError on violation. Backend failures are
    raised as StorageUnavailable.
    """

    @abstractmethod
    async def find_submission_by_email(self, email: str) -> Optional[SubmissionRecord]: ...

    @abstractmethod
    async def insert_submission(self, record: SubmissionRecord) -> None: ...

    @abstractmethod
    async def delete_submission(self, email: str) -> None: ...

    @abstractmethod
    async def list_submissions(self, newest_first: bool = True) -> List[SubmissionRecord]: ...

    @abstractmethod
    async def get_session(self, email: str) -> Optional[SessionRecord]: ...

    @abstractmethod
    async def upsert_session(self, record: SessionRecord) -> None: ...

    @abstractmethod
    async def delete_session(self, email: str) -> None: ...

    @abstractmethod
    async def find_admin_by_identifier(self, identifier: str) -> Optional[AdminAccount]: ...

    @abstractmethod
    async def upsert_admin(self, account: AdminAccount) -> None: ...


class InMemoryStorage(QuizStorage):
    """Dict-backed storage for local development and tests. Process lifetime only."""

    def __init__(self):
        self._submissions: Dict[str, SubmissionRecord] = {}
        self._sessions: Dict[str, SessionRecord] = {}
        self._admins: Dict[str, AdminAccount] = {}
        self._lock = threading.Lock()

    async def find_submission_by_email(self, email: str) -> Optional[SubmissionRecord]:
        with self._lock:
            record = self._submissions.get(email)
            return record.model_copy(deep=True) if record is not None else None

    async def insert_submission(self, record: SubmissionRecord) -> None:
        with self._lock:
            if record.email in self._submissions:
                raise DuplicateSubmissionError()
            self._submissions[record.email] = record.model_copy(deep=True)

    async def delete_submission(self, email: str) -> None:
        with self._lock:
            self._submissions.pop(email, None)

    async def list_submissions(self, newest_first: bool = True) -> List[SubmissionRecord]:
        with self._lock:
            records = list(self._submissions.values())
        return sorted(records, key=lambda r: r.completed_at, reverse=newest_first)

    async def get_session(self, email: str) -> Optional[SessionRecord]:
        with self._lock:
            record = self._sessions.get(email)
            return record.model_copy(deep=True) if record is not None else None

    async def upsert_session(self, record: SessionRecord) -> None:
        with self._lock:
            self._sessions[record.email] = record.model_copy(deep=True)

    async def delete_session(self, email: str) -> None:
        with self._lock:
            self._sessions.pop(email, None)

    async def find_admin_by_identifier(self, identifier: str) -> Optional[AdminAccount]:
        with self._lock:
            for account in self._admins.values():
                if account.username == identifier or (account.email and account.email.lower() == identifier.lower()):
                    return account.model_copy()
        return None

    async def upsert_admin(self, account: AdminAccount) -> None:
        with self._lock:
            self._admins[account.username] = account.model_copy()


class SqlAlchemyStorage(QuizStorage):
    """
    Relational storage on an async SQLAlchemy session factory.

    Each operation runs in its own session and transaction.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def find_submission_by_email(self, email: str) -> Optional[SubmissionRecord]:
        try:
            async with self._session_factory() as session:
                submission = await session.get(Submission, email)
                return submission.to_record() if submission else None
        except SQLAlchemyError as e:
            logger.error(f"Database error looking up submission for {email}: {e}", exc_info=True)
            raise StorageUnavailable() from e

    async def insert_submission(self, record: SubmissionRecord) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(Submission.from_record(record))
        except IntegrityError as e:
            logger.warning(f"Unique constraint rejected submission for {record.email}")
            raise DuplicateSubmissionError() from e
        except SQLAlchemyError as e:
            logger.error(f"Database error inserting submission for {record.email}: {e}", exc_info=True)
            raise StorageUnavailable() from e

    async def delete_submission(self, email: str) -> None:
        await self._delete(Submission, email)

    async def list_submissions(self, newest_first: bool = True) -> List[SubmissionRecord]:
        order = Submission.completed_at.desc() if newest_first else Submission.completed_at.asc()
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(Submission).order_by(order))
                return [row.to_record() for row in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Database error listing submissions: {e}", exc_info=True)
            raise StorageUnavailable() from e

    async def get_session(self, email: str) -> Optional[SessionRecord]:
        try:
            async with self._session_factory() as session:
                quiz_session = await session.get(QuizSession, email)
                return quiz_session.to_record() if quiz_session else None
        except SQLAlchemyError as e:
            logger.error(f"Database error looking up session for {email}: {e}", exc_info=True)
            raise StorageUnavailable() from e

    async def upsert_session(self, record: SessionRecord) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.merge(QuizSession(
                        email=record.email,
                        progress=record.progress,
                        answers=dict(record.answers),
                        last_updated=record.last_updated,
                        ip_address=record.ip_address,
                    ))
        except SQLAlchemyError as e:
            logger.error(f"Database error saving session for {record.email}: {e}", exc_info=True)
            raise StorageUnavailable() from e

    async def delete_session(self, email: str) -> None:
        await self._delete(QuizSession, email)

    async def find_admin_by_identifier(self, identifier: str) -> Optional[AdminAccount]:
        stmt = select(AdminUser).where(or_(
            AdminUser.username == identifier,
            func.lower(AdminUser.email) == identifier.lower(),
        ))
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                admin = result.scalars().first()
                return admin.to_account() if admin else None
        except SQLAlchemyError as e:
            logger.error(f"Database error looking up admin '{identifier}': {e}", exc_info=True)
            raise StorageUnavailable() from e

    async def upsert_admin(self, account: AdminAccount) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.merge(AdminUser(
                        username=account.username,
                        email=account.email,
                        password_hash=account.password_hash,
                        created_at=account.created_at,
                    ))
        except SQLAlchemyError as e:
            logger.error(f"Database error saving admin '{account.username}': {e}", exc_info=True)
            raise StorageUnavailable() from e

    async def _delete(self, model, email: str) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(delete(model).where(model.email == email))
        except SQLAlchemyError as e:
            logger.error(f"Database error deleting {model.__tablename__} row for {email}: {e}", exc_info=True)
            raise StorageUnavailable() from e
