"""
strive/schemas/conversation.py

Purpose: Messaging display records

- Conversation between two swap partners
- Individual chat messages
"""

from pydantic import BaseModel, Field
from typing import List, Optional


class Message(BaseModel):
    id: str
    sender_id: str = Field(..., alias="senderId")
    text: str
    timestamp: str

    class Config:
        populate_by_name = True


class Conversation(BaseModel):
    """
    A swap conversation as rendered by the messaging screen.
    """
    id: str
    user_name: str = Field(..., alias="userName")
    user_avatar: str = Field(default="", alias="userAvatar")
    last_message: str = Field(default="", alias="lastMessage")
    last_message_time: str = Field(default="", alias="lastMessageTime")
    messages: List[Message] = Field(default_factory=list)
    swap_accepted: bool = Field(default=False, alias="swapAccepted")
    swap_completed: bool = Field(default=False, alias="swapCompleted")
    has_reviewed: bool = Field(default=False, alias="hasReviewed")
    unread: bool = False
    skill_offered: Optional[str] = Field(default=None, alias="skillOffered")
    skill_wanted: Optional[str] = Field(default=None, alias="skillWanted")

    class Config:
        populate_by_name = True


class SwapStep(BaseModel):
    id: str
    label: str
    completed: bool


class SwapProgressResponse(BaseModel):
    """
    Swap timeline for one conversation.
    """
    conversation_id: str = Field(..., alias="conversationId")
    state: str
    label: str
    progress: float
    steps: List[SwapStep]

    class Config:
        populate_by_name = True
