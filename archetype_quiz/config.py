from pathlib import Path
from typing import List
import os

from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file if it exists, for local development
# In production, environment variables should be set directly.
if os.path.exists(".env"):
    from dotenv import load_dotenv
    load_dotenv()

DEFAULT_DEFINITION_PATH = Path(__file__).parent / "scoring" / "assets" / "archetypes.yml"


class AppSettings(BaseSettings):
    environment: str = "development"
    log_level: str = "INFO"
    cors_origins: List[str] = ["http://localhost:3000"]
    storage_backend: str = "sql"  # "sql" or "memory"
    rate_limit_backend: str = "memory"  # "memory" or "redis"
    definition_path: str = str(DEFAULT_DEFINITION_PATH)

    model_config = SettingsConfigDict(env_prefix='QUIZ_')


class RateLimitSettings(BaseSettings):
    max_attempts: int = 3
    window_seconds: int = 3600  # 1 hour

    model_config = SettingsConfigDict(env_prefix='RATE_LIMIT_')


class DatabaseSettings(BaseSettings):
    url: str = "sqlite+aiosqlite:///./quiz.db"
    echo: bool = False

    model_config = SettingsConfigDict(env_prefix='DATABASE_')


class RedisSettings(BaseSettings):
    url: str = "redis://localhost:6379/0"
    namespace: str = "quiz:"

    model_config = SettingsConfigDict(env_prefix='REDIS_')


class JwtSettings(BaseSettings):
    secret: str = "dev-secret-key-change-me-in-production"
    algorithm: str = "HS256"
    ttl_seconds: int = 86400  # 24 hours
    issuer: str = "archetype-quiz-api"
    audience: str = "archetype-quiz-admin"

    model_config = SettingsConfigDict(env_prefix='JWT_')


class PasswordSettings(BaseSettings):
    pepper: str = ""

    model_config = SettingsConfigDict(env_prefix='PASSWORD_')


# Instantiate settings
app_settings = AppSettings()
rate_limit_settings = RateLimitSettings()
database_settings = DatabaseSettings()
redis_settings = RedisSettings()
jwt_settings = JwtSettings()
password_settings = PasswordSettings()
