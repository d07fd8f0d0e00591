"""
strive/schemas/provider.py

Purpose: Marketplace display records

- Service providers listed on the swap feed
- Skills with proficiency levels
"""

from pydantic import BaseModel, Field
from typing import List, Literal, Optional


class SkillWithLevel(BaseModel):
    name: str
    level: Literal["Expert", "Intermediate", "Amateur", "Beginner"]


class ServiceProvider(BaseModel):
    """
    A provider card on the swap feed. Optional fields are only rendered when present.
    """
    id: str
    name: str
    avatar: str = ""
    title: Optional[str] = None
    service_name: Optional[str] = Field(default=None, alias="serviceName")
    rating: float = 0.0
    reviews: int = 0
    category: str
    paid_price: Optional[float] = Field(default=None, alias="paidPrice")
    accepts_swap: bool = Field(default=False, alias="acceptsSwap")
    skills_offered: List[SkillWithLevel] = Field(default_factory=list, alias="skillsOffered")
    skills_wanted: List[SkillWithLevel] = Field(default_factory=list, alias="skillsWanted")
    availability: List[str] = Field(default_factory=list)
    time_slots: Optional[str] = Field(default=None, alias="timeSlots")
    bio: Optional[str] = None
    is_active_now: bool = Field(default=False, alias="isActiveNow")

    class Config:
        populate_by_name = True


class ProviderSearchRequest(BaseModel):
    """
    Provider list currently shown on the feed, plus the active filters.
    """
    providers: List[ServiceProvider]
    search_query: str = Field(default="", alias="searchQuery")
    category: Optional[str] = None

    class Config:
        populate_by_name = True
