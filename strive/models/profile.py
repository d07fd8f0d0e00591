"""
strive/models/profile.py

Purpose: User profile row

- Mirrors the hosted User_Profile table
- Mobile number is the unique lookup key for OTP users
- Up to three interest categories mark onboarding as complete
"""

from pydantic import BaseModel, Field
from typing import List, Optional


class UserProfile(BaseModel):
    id: Optional[str] = None
    user_id: str = Field(..., alias="User_id")
    user_name: Optional[str] = Field(default=None, alias="User_name")
    profile_name: Optional[str] = Field(default=None, alias="Profile_name")
    date_of_birth: Optional[str] = Field(default=None, alias="Date_of_birth")
    gender: Optional[str] = Field(default=None, alias="Gender")
    mobile_number: Optional[str] = Field(default=None, alias="Mobile_number")
    email_id: Optional[str] = Field(default=None, alias="Email_id")
    bio: Optional[str] = Field(default=None, alias="Bio")
    profile_picture: Optional[str] = Field(default=None, alias="Profile_picture")
    interest_cat_1: Optional[str] = Field(default=None, alias="Interest_cat_1")
    interest_cat_2: Optional[str] = Field(default=None, alias="Interest_cat_2")
    interest_cat_3: Optional[str] = Field(default=None, alias="Interest_cat_3")
    created_at: Optional[str] = None
    last_logout_time: Optional[str] = None

    class Config:
        populate_by_name = True

    @property
    def interests(self) -> List[str]:
        return [
            interest
            for interest in (self.interest_cat_1, self.interest_cat_2, self.interest_cat_3)
            if interest
        ]

    @property
    def has_interests(self) -> bool:
        return bool(self.interests)
