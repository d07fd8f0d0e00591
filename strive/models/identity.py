"""
strive/models/identity.py

Purpose: Identity and session records

- Tagged identity union (OAuth-derived vs OTP-derived)
- Hosted session persisted in the local key-value store
- AuthState snapshot published to the UI layer
"""

import time
from dataclasses import dataclass, replace
from pydantic import BaseModel, Field
from typing import Annotated, Any, Dict, Literal, Optional, Union

from strive.core.exceptions import StriveError
from strive.flow.states import SessionState


class OAuthIdentity(BaseModel):
    """
    User record returned by the hosted identity service.
    """
    kind: Literal["oauth"] = "oauth"
    user_id: str
    email: Optional[str] = None
    provider_id: Optional[str] = None
    phone: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None

    @classmethod
    def from_user(cls, user: Dict[str, Any]) -> "OAuthIdentity":
        """Build from a hosted /user payload."""
        app_metadata = user.get("app_metadata") or {}
        user_metadata = user.get("user_metadata") or {}
        return cls(
            user_id=user["id"],
            email=user.get("email") or None,
            provider_id=app_metadata.get("provider"),
            phone=user.get("phone") or None,
            full_name=user_metadata.get("full_name") or user_metadata.get("name"),
            avatar_url=user_metadata.get("avatar_url"),
        )


class OtpIdentity(BaseModel):
    """
    Phone-number login tracked by local markers. Carries no federated fields.
    """
    kind: Literal["otp"] = "otp"
    phone: str

    @property
    def user_id(self) -> str:
        return self.phone


Identity = Annotated[Union[OAuthIdentity, OtpIdentity], Field(discriminator="kind")]


class Session(BaseModel):
    """
    Hosted session. Tokens are opaque to this service.
    """
    access_token: str
    refresh_token: str
    expires_at: Optional[int] = None  # epoch seconds
    token_type: str = "bearer"
    user: OAuthIdentity

    def is_expired(self, margin_seconds: int = 0, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        now = time.time() if now is None else now
        return self.expires_at - margin_seconds <= now

    @classmethod
    def from_token_response(cls, data: Dict[str, Any]) -> "Session":
        """Build from a hosted /token or /verify response."""
        expires_at = data.get("expires_at")
        if expires_at is None and data.get("expires_in") is not None:
            expires_at = int(time.time()) + int(data["expires_in"])
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at=expires_at,
            token_type=data.get("token_type", "bearer"),
            user=OAuthIdentity.from_user(data["user"]),
        )


@dataclass(frozen=True)
class AuthState:
    """
    Snapshot published to subscribers. Exactly one user reference (or none)
    drives routing.
    """
    user: Optional[Union[OAuthIdentity, OtpIdentity]] = None
    loading: bool = True
    error: Optional[StriveError] = None
    resolved: bool = False
    onboarding_pending: bool = False

    @property
    def status(self) -> SessionState:
        if not self.resolved:
            return SessionState.UNKNOWN
        if isinstance(self.user, OAuthIdentity):
            return SessionState.AUTHENTICATED_OAUTH
        if isinstance(self.user, OtpIdentity):
            return SessionState.AUTHENTICATED_OTP
        return SessionState.UNAUTHENTICATED

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def evolve(self, **changes) -> "AuthState":
        return replace(self, **changes)
