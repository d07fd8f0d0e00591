"""
strive/flow/states.py

Purpose: Defines the session states

- Enum for each conceptual session state
  (UNKNOWN, AUTHENTICATED_OAUTH, AUTHENTICATED_OTP, UNAUTHENTICATED)
- Single source of truth for routing decisions
- State transition validation
- App lifecycle states that trigger re-reconciliation
"""

from enum import Enum
from typing import Dict, List, Optional
from dataclasses import dataclass


class SessionState(str, Enum):
    """
    Conceptual session states derived from the published user reference.
    """

    # Initial / loading
    UNKNOWN = "UNKNOWN"

    # Authenticated, by provenance
    AUTHENTICATED_OAUTH = "AUTHENTICATED_OAUTH"
    AUTHENTICATED_OTP = "AUTHENTICATED_OTP"

    UNAUTHENTICATED = "UNAUTHENTICATED"


class AppState(str, Enum):
    """
    Foreground/background lifecycle states reported by the UI shell.
    """
    ACTIVE = "active"
    INACTIVE = "inactive"
    BACKGROUND = "background"


class AuthChangeEvent(str, Enum):
    """
    Events emitted by the hosted auth client.
    """
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


@dataclass
class StateMetadata:
    """
    Metadata associated with each session state.
    """
    name: SessionState
    display_name: str
    is_authenticated: bool = False
    provenance: Optional[str] = None  # "oauth" or "otp"
    description: str = ""


STATE_METADATA: Dict[SessionState, StateMetadata] = {
    SessionState.UNKNOWN: StateMetadata(
        name=SessionState.UNKNOWN,
        display_name="Checking session",
        description="No determination made yet"
    ),
    SessionState.AUTHENTICATED_OAUTH: StateMetadata(
        name=SessionState.AUTHENTICATED_OAUTH,
        display_name="Signed in",
        is_authenticated=True,
        provenance="oauth",
        description="Hosted session with a live user record"
    ),
    SessionState.AUTHENTICATED_OTP: StateMetadata(
        name=SessionState.AUTHENTICATED_OTP,
        display_name="Signed in with phone",
        is_authenticated=True,
        provenance="otp",
        description="No hosted session; local login markers and phone present"
    ),
    SessionState.UNAUTHENTICATED: StateMetadata(
        name=SessionState.UNAUTHENTICATED,
        display_name="Signed out",
        description="Neither source yields a session"
    ),
}


# Valid state transitions. UNKNOWN is never re-entered once a probe completes.
# Authenticated states may fall to UNAUTHENTICATED or switch provenance when a
# foreground re-probe notices an externally expired hosted session.
STATE_TRANSITIONS: Dict[SessionState, List[SessionState]] = {
    SessionState.UNKNOWN: [
        SessionState.UNKNOWN,
        SessionState.AUTHENTICATED_OAUTH,
        SessionState.AUTHENTICATED_OTP,
        SessionState.UNAUTHENTICATED,
    ],
    SessionState.UNAUTHENTICATED: [
        SessionState.AUTHENTICATED_OAUTH,
        SessionState.AUTHENTICATED_OTP,
        SessionState.UNAUTHENTICATED,
    ],
    SessionState.AUTHENTICATED_OAUTH: [
        SessionState.AUTHENTICATED_OAUTH,  # Token refresh
        SessionState.AUTHENTICATED_OTP,  # Hosted session expired, markers remain
        SessionState.UNAUTHENTICATED,
    ],
    SessionState.AUTHENTICATED_OTP: [
        SessionState.AUTHENTICATED_OTP,
        SessionState.AUTHENTICATED_OAUTH,  # Hosted session takes precedence
        SessionState.UNAUTHENTICATED,
    ],
}


def is_valid_transition(from_state: SessionState, to_state: SessionState) -> bool:
    """
    Checks if a state transition is valid.

    Args:
        from_state: Current state
        to_state: Target state

    Returns:
        True if transition is allowed, False otherwise
    """
    allowed_transitions = STATE_TRANSITIONS.get(from_state, [])
    return to_state in allowed_transitions


def get_state_metadata(state: SessionState) -> StateMetadata:
    """
    Retrieves metadata for a given state.
    """
    return STATE_METADATA.get(state, StateMetadata(
        name=state,
        display_name=state.value,
        description="Unknown state"
    ))


def is_foreground_transition(previous: Optional[AppState], current: AppState) -> bool:
    """
    True when the app comes back to the foreground from background/inactive.
    """
    return previous in (AppState.INACTIVE, AppState.BACKGROUND) and current == AppState.ACTIVE
