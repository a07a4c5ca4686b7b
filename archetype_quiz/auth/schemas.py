# archetype_quiz/auth/schemas.py
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, Field


@dataclass(frozen=True)  # Immutable admin state
class AuthenticatedAdmin:
    username: str
    is_admin: bool


class ErrorDetail(BaseModel):
    """Standard error response detail."""
    code: str = Field(..., description="Application-specific error code.")
    message: str = Field(..., description="User-friendly error message.")


class ErrorResponse(BaseModel):
    """Standard error response model."""
    detail: ErrorDetail


# --- Endpoint Schemas ---

class AdminLoginRequest(BaseModel):
    # Any of the three may carry the identifier; username or email are accepted
    identifier: Optional[str] = Field(None, description="Admin username or email.")
    username: Optional[str] = Field(None, description="Admin username.")
    email: Optional[str] = Field(None, description="Admin email.")
    password: Optional[str] = Field(None, description="Admin password.")

    def resolved_identifier(self) -> Optional[str]:
        return self.identifier or self.username or self.email


class TokenResponse(BaseModel):
    token: str = Field(..., description="JWT admin access token.")
    token_type: str = Field("bearer", description="Token type (always 'bearer').")


class SuccessResponse(BaseModel):
    """Generic success response for actions like reset or session save."""
    success: bool = True
