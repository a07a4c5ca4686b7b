# archetype_quiz/auth/crypto.py
import logging

from passlib.context import CryptContext
from passlib.exc import UnknownHashError

from archetype_quiz.config import password_settings

_log = logging.getLogger(__name__)

# Argon2 cost factors; adjust for your hardware
pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto",
    argon2__memory_cost=65536,  # KiB
    argon2__parallelism=4,
    argon2__time_cost=3,
)


def hash_password(password: str) -> str:
    """Hashes an admin password using Argon2 with the configured pepper."""
    if not password:
        raise ValueError("Password cannot be empty.")
    password_with_pepper = f"{password}{password_settings.pepper}"
    return pwd_context.hash(password_with_pepper)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verifies a plain password against a stored hash."""
    if not plain_password or not hashed_password:
        return False
    password_with_pepper = f"{plain_password}{password_settings.pepper}"
    try:
        # Constant-time comparison provided by passlib
        return pwd_context.verify(password_with_pepper, hashed_password)
    except UnknownHashError:
        _log.warning(f"Attempted verification with unknown hash format: {hashed_password[:10]}...")
        return False
