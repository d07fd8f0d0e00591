"""
Tests for session state tables and swap progress derivation.
"""

import pytest

from strive.flow.states import (
    AppState,
    SessionState,
    get_state_metadata,
    is_foreground_transition,
    is_valid_transition,
)
from strive.flow.swap_states import (
    SwapState,
    get_current_swap_state,
    get_swap_progress,
    get_swap_timeline,
)
from strive.models.identity import AuthState, OAuthIdentity, OtpIdentity
from strive.schemas.conversation import Conversation, Message


def conversation(message_count=0, **flags):
    messages = [
        Message(id=str(i), senderId="u1", text="hi", timestamp="10:00")
        for i in range(message_count)
    ]
    return Conversation(id="c1", userName="Asha", messages=messages, **flags)


class TestSessionStates:

    def test_unknown_is_never_reentered(self):
        assert not is_valid_transition(SessionState.UNAUTHENTICATED, SessionState.UNKNOWN)
        assert not is_valid_transition(SessionState.AUTHENTICATED_OTP, SessionState.UNKNOWN)

    def test_hosted_session_can_replace_phone_login(self):
        assert is_valid_transition(SessionState.AUTHENTICATED_OTP, SessionState.AUTHENTICATED_OAUTH)

    def test_metadata_provenance(self):
        assert get_state_metadata(SessionState.AUTHENTICATED_OAUTH).provenance == "oauth"
        assert get_state_metadata(SessionState.AUTHENTICATED_OTP).provenance == "otp"
        assert get_state_metadata(SessionState.UNAUTHENTICATED).is_authenticated is False

    @pytest.mark.parametrize("previous,current,expected", [
        (AppState.BACKGROUND, AppState.ACTIVE, True),
        (AppState.INACTIVE, AppState.ACTIVE, True),
        (AppState.ACTIVE, AppState.ACTIVE, False),
        (AppState.ACTIVE, AppState.BACKGROUND, False),
        (None, AppState.ACTIVE, False),
    ])
    def test_foreground_transition(self, previous, current, expected):
        assert is_foreground_transition(previous, current) is expected

    def test_auth_state_status(self):
        assert AuthState().status == SessionState.UNKNOWN
        assert AuthState(resolved=True).status == SessionState.UNAUTHENTICATED
        assert AuthState(user=OtpIdentity(phone="9876543210"), resolved=True).status == SessionState.AUTHENTICATED_OTP
        oauth = AuthState(user=OAuthIdentity(user_id="u1"), resolved=True)
        assert oauth.status == SessionState.AUTHENTICATED_OAUTH
        assert oauth.is_authenticated is True

    def test_otp_identity_is_keyed_by_phone(self):
        assert OtpIdentity(phone="9876543210").user_id == "9876543210"


class TestSwapStates:

    @pytest.mark.parametrize("count,expected", [
        (0, SwapState.MATCHED),
        (1, SwapState.ACCEPTED),
        (2, SwapState.MATCHED),
        (3, SwapState.CHATTING),
        (10, SwapState.CHATTING),
    ])
    def test_message_count(self, count, expected):
        assert get_current_swap_state(conversation(count)) == expected

    def test_flags_win_over_messages(self):
        assert get_current_swap_state(conversation(5, swapAccepted=True)) == SwapState.IN_PROGRESS
        assert get_current_swap_state(
            conversation(5, swapAccepted=True, swapCompleted=True)
        ) == SwapState.COMPLETED
        assert get_current_swap_state(
            conversation(0, swapCompleted=True, hasReviewed=True)
        ) == SwapState.REVIEWED

    def test_progress(self):
        assert get_swap_progress(SwapState.MATCHED) == 16.67
        assert get_swap_progress(SwapState.IN_PROGRESS) == 66.67
        assert get_swap_progress(SwapState.REVIEWED) == 100.0

    def test_timeline_marks_steps_up_to_current(self):
        timeline = get_swap_timeline(conversation(1))

        assert [step["id"] for step in timeline] == [
            "matched", "chatting", "accepted", "in-progress", "completed", "reviewed"
        ]
        assert [step["completed"] for step in timeline] == [True, True, True, False, False, False]
