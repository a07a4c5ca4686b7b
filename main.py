import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from archetype_quiz.cache.connection import close_redis
from archetype_quiz.config import app_settings
from archetype_quiz.db.session import create_tables, get_async_engine, get_session_factory
from archetype_quiz.logging_config import setup_logging
from archetype_quiz.middleware.auth import AdminAuthenticationMiddleware
from archetype_quiz.routers import admin as admin_router
from archetype_quiz.routers import quiz as quiz_router
from archetype_quiz.scoring.engine import ArchetypeEngine, get_default_engine
from archetype_quiz.services.lifecycle import SubmissionLifecycleManager
from archetype_quiz.services.rate_limiter import InMemoryRateLimiter, RateLimiter, RedisRateLimiter
from archetype_quiz.services.storage import InMemoryStorage, QuizStorage, SqlAlchemyStorage

logger = logging.getLogger(__name__)

API_PREFIX = "/api"


def _build_rate_limiter() -> RateLimiter:
    if app_settings.rate_limit_backend == "redis":
        return RedisRateLimiter.from_settings()
    return InMemoryRateLimiter.from_settings()


def create_app(
    storage: Optional[QuizStorage] = None,
    rate_limiter: Optional[RateLimiter] = None,
    engine: Optional[ArchetypeEngine] = None,
) -> FastAPI:
    """
    Builds the API. Collaborators left as None are created from settings:
    storage per QUIZ_STORAGE_BACKEND, the rate limiter per
    QUIZ_RATE_LIMIT_BACKEND and the default scoring engine.
    """
    db_engine = None
    if storage is None:
        if app_settings.storage_backend == "memory":
            storage = InMemoryStorage()
        else:
            db_engine = get_async_engine()
            storage = SqlAlchemyStorage(get_session_factory(db_engine))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(app_settings.log_level, app_settings.environment)
        logger.info(f"Starting quiz API ({app_settings.environment}), storage: {type(storage).__name__}")
        if db_engine is not None:
            await create_tables(db_engine)
        yield
        await close_redis()
        if db_engine is not None:
            await db_engine.dispose()
        logger.info("Quiz API shut down")

    app = FastAPI(title="Archetype Quiz API", lifespan=lifespan)
    app.state.lifecycle = SubmissionLifecycleManager(
        engine=engine or get_default_engine(),
        storage=storage,
        rate_limiter=rate_limiter or _build_rate_limiter(),
    )

    app.add_middleware(
        AdminAuthenticationMiddleware,
        protected_prefixes=(f"{API_PREFIX}/admin",),
        excluded_paths={f"{API_PREFIX}/admin/login"},
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(quiz_router.router, prefix=API_PREFIX)
    app.include_router(admin_router.router, prefix=API_PREFIX)

    @app.get("/health", tags=["Health Check"])
    async def health():
        return {"status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
