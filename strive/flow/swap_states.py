"""
strive/flow/swap_states.py

Purpose: Skill-swap progress for a conversation

- Linear progression shown on the messaging timeline
- Derived from the conversation's flags and message count
"""

from enum import Enum
from typing import Dict, List

from strive.schemas.conversation import Conversation


class SwapState(str, Enum):
    MATCHED = "matched"
    CHATTING = "chatting"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    REVIEWED = "reviewed"


# Timeline order
SWAP_STATES: List[SwapState] = [
    SwapState.MATCHED,
    SwapState.CHATTING,
    SwapState.ACCEPTED,
    SwapState.IN_PROGRESS,
    SwapState.COMPLETED,
    SwapState.REVIEWED,
]

SWAP_STATE_LABELS: Dict[SwapState, str] = {
    SwapState.MATCHED: "Matched",
    SwapState.CHATTING: "Chatting",
    SwapState.ACCEPTED: "Accepted",
    SwapState.IN_PROGRESS: "In Progress",
    SwapState.COMPLETED: "Completed",
    SwapState.REVIEWED: "Reviewed",
}


def get_current_swap_state(conversation: Conversation) -> SwapState:
    """
    Determines where a conversation sits on the swap timeline.

    Flags win over message count. A single message means the swap request
    was accepted; more than two means the users are chatting. Zero or two
    messages stay at MATCHED, matching what the messaging screen has always
    shown.
    """
    if conversation.has_reviewed:
        return SwapState.REVIEWED
    if conversation.swap_completed:
        return SwapState.COMPLETED
    if conversation.swap_accepted:
        return SwapState.IN_PROGRESS

    message_count = len(conversation.messages or [])
    if message_count > 2:
        return SwapState.CHATTING
    if message_count == 1:
        return SwapState.ACCEPTED
    return SwapState.MATCHED


def get_swap_progress(state: SwapState) -> float:
    """
    Progress bar fill in percent (e.g. MATCHED -> 16.67, REVIEWED -> 100.0).
    """
    index = SWAP_STATES.index(state)
    return round((index + 1) / len(SWAP_STATES) * 100, 2)


def get_swap_timeline(conversation: Conversation) -> List[Dict[str, object]]:
    """
    Timeline steps with completion flags for the messaging screen.
    """
    current_index = SWAP_STATES.index(get_current_swap_state(conversation))
    return [
        {
            "id": state.value,
            "label": SWAP_STATE_LABELS[state],
            "completed": index <= current_index,
        }
        for index, state in enumerate(SWAP_STATES)
    ]
