"""
strive/schemas/session.py

Purpose: Request/response bodies for the session API
"""

from pydantic import BaseModel, Field
from typing import List, Optional

from strive.flow.states import AppState, SessionState
from strive.models.identity import AuthState, Identity
from strive.schemas.response import ErrorResponse


class SessionStateResponse(BaseModel):
    """
    Published AuthState as seen by the UI shell.
    """
    status: SessionState
    user: Optional[Identity] = None
    loading: bool
    error: Optional[ErrorResponse] = None
    recoverable: Optional[bool] = None
    onboarding_pending: bool = False

    @classmethod
    def from_state(cls, state: AuthState) -> "SessionStateResponse":
        error = None
        recoverable = None
        if state.error is not None:
            error = ErrorResponse(
                error=state.error.message,
                code=state.error.code,
                details=state.error.details,
            )
            recoverable = state.error.recoverable

        return cls(
            status=state.status,
            user=state.user,
            loading=state.loading,
            error=error,
            recoverable=recoverable,
            onboarding_pending=state.onboarding_pending,
        )


class OtpSendRequest(BaseModel):
    phone: str = Field(..., min_length=1, description="Mobile number, 10 digits or +91 prefixed")


class OtpVerifyRequest(BaseModel):
    phone: str = Field(..., min_length=1)
    code: str = Field(..., min_length=1, description="6-digit SMS code")
    email: Optional[str] = None


class OnboardingRequest(BaseModel):
    interests: List[str] = Field(..., description="Selected interest category ids")


class AppStateRequest(BaseModel):
    state: AppState


class CallbackRequest(BaseModel):
    url: str = Field(..., min_length=1, description="Deep link or redirect URL")
