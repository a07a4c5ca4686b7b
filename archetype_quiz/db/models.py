from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
)
from sqlalchemy.orm import declarative_base

from archetype_quiz.schemas.records import AdminAccount, SessionRecord, SubmissionRecord

# Naming conventions for constraints and indexes
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)
Base = declarative_base(metadata=metadata)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Submission(Base):
    __tablename__ = "submissions"

    # The primary key is the authoritative one-submission-per-email guard
    email = Column(String(320), primary_key=True)
    name = Column(String(255), nullable=False)
    archetype = Column(String(64), nullable=False)
    description = Column(String(512), nullable=False)
    scores = Column(JSON, nullable=False)
    confidence = Column(String(16), nullable=False)
    completion_time = Column(String(16), nullable=False)
    answers = Column(JSON, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    ip_address = Column(String(64), nullable=True)

    __table_args__ = (
        Index("ix_submissions_completed_at_desc", completed_at.desc()),
    )

    @classmethod
    def from_record(cls, record: SubmissionRecord) -> "Submission":
        return cls(
            email=record.email,
            name=record.name,
            archetype=record.archetype,
            description=record.description,
            scores=dict(record.scores),
            confidence=record.confidence.value,
            completion_time=record.completion_time,
            answers=dict(record.answers),
            completed_at=record.completed_at,
            ip_address=record.ip_address,
        )

    def to_record(self) -> SubmissionRecord:
        return SubmissionRecord(
            email=self.email,
            name=self.name,
            archetype=self.archetype,
            description=self.description,
            scores=self.scores,
            confidence=self.confidence,
            completion_time=self.completion_time,
            answers=self.answers,
            completed_at=_as_utc(self.completed_at),
            ip_address=self.ip_address,
        )


class QuizSession(Base):
    __tablename__ = "quiz_sessions"

    email = Column(String(320), primary_key=True)
    progress = Column(Integer, nullable=False, default=0)
    answers = Column(JSON, nullable=False)
    last_updated = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    ip_address = Column(String(64), nullable=True)

    def to_record(self) -> SessionRecord:
        return SessionRecord(
            email=self.email,
            progress=self.progress,
            answers=self.answers,
            last_updated=_as_utc(self.last_updated),
            ip_address=self.ip_address,
        )


class AdminUser(Base):
    __tablename__ = "admin_users"

    username = Column(String(150), primary_key=True)
    email = Column(String(320), unique=True, nullable=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_account(self) -> AdminAccount:
        return AdminAccount(
            username=self.username,
            email=self.email,
            password_hash=self.password_hash,
            created_at=_as_utc(self.created_at),
        )
