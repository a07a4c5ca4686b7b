from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from archetype_quiz.config import database_settings
from archetype_quiz.db.models import Base


def get_async_engine(db_url: Optional[str] = None, echo: Optional[bool] = None) -> AsyncEngine:
    """Creates an asynchronous SQLAlchemy engine instance."""
    db_url = db_url or database_settings.url
    kwargs = {
        "echo": database_settings.echo if echo is None else echo,
        "pool_pre_ping": True,
    }
    if not db_url.startswith("sqlite"):
        kwargs.update(pool_size=10, max_overflow=20, pool_recycle=1800)  # 30 minutes
    return create_async_engine(db_url, **kwargs)


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Creates an asynchronous session factory."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Important for async usage, especially with FastAPI
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Creates any missing tables. There is no migration tooling; this is additive only."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
