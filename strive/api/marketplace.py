"""
strive/api/marketplace.py

Purpose: Feed and messaging helpers for the UI shell

- Provider search/category filtering
- Swap progress for a conversation
"""

from typing import List

from fastapi import APIRouter

from strive.core.logging import get_logger
from strive.flow.swap_states import (
    SWAP_STATE_LABELS,
    get_current_swap_state,
    get_swap_progress,
    get_swap_timeline,
)
from strive.schemas.conversation import Conversation, SwapProgressResponse
from strive.schemas.provider import ProviderSearchRequest, ServiceProvider
from strive.services.provider_service import filter_providers

logger = get_logger(__name__)
router = APIRouter()


@router.post("/providers/search", response_model=List[ServiceProvider])
async def search_providers(body: ProviderSearchRequest):
    result = filter_providers(body.providers, body.search_query, body.category)
    logger.debug(f"Provider search kept {len(result)} of {len(body.providers)}")
    return result


@router.post("/conversations/swap-progress", response_model=SwapProgressResponse)
async def swap_progress(conversation: Conversation):
    """
    Where the conversation sits on the swap timeline.
    """
    state = get_current_swap_state(conversation)
    return SwapProgressResponse(
        conversation_id=conversation.id,
        state=state.value,
        label=SWAP_STATE_LABELS[state],
        progress=get_swap_progress(state),
        steps=get_swap_timeline(conversation),
    )
