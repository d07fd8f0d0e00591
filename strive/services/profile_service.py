"""
strive/services/profile_service.py

Purpose: User_Profile table access (PostgREST over httpx)

- Lookup or creation of the profile keyed by mobile number
- Saving onboarding interests
- Caching the profile in the local key-value store
- Recording logout time
"""

import json
import secrets
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from strive.core.exceptions import ExternalServiceError, TransientAuthError
from strive.core.logging import get_logger
from strive.db.storage import KeyValueStore
from strive.models.profile import UserProfile
from utils.constants import (
    HAS_COMPLETED_ONBOARDING_KEY,
    MARKER_TRUE,
    USER_ID_KEY,
    USER_INTERESTS_KEY,
    USER_MOBILE_KEY,
    USER_PROFILE_KEY,
)
from utils.validation_utils import mask_mobile, profile_interest_fields

logger = get_logger(__name__)

PROFILE_TABLE = "User_Profile"


def generate_user_id() -> str:
    return f"user_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"


class ProfileService:
    """Service for the hosted User_Profile table"""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        storage: KeyValueStore,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.table_url = f"{base_url.rstrip('/')}/rest/v1/{PROFILE_TABLE}"
        self._storage = storage
        self._http = httpx.AsyncClient(
            timeout=timeout,
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "Prefer": "return=representation",
            },
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self,
        method: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json_body: Any = None,
    ) -> List[Dict[str, Any]]:
        try:
            response = await self._http.request(
                method, self.table_url, params=params, json=json_body
            )
        except httpx.TimeoutException as e:
            logger.error("Profile service timeout")
            raise TransientAuthError("Profile service timeout") from e
        except httpx.RequestError as e:
            logger.error(f"Network error calling profile service: {e}")
            raise TransientAuthError("Network error connecting to profile service") from e

        if response.status_code >= 500:
            logger.error(f"Profile service error: {response.status_code}")
            raise TransientAuthError(
                "Profile service unavailable", details={"status": response.status_code}
            )
        if response.status_code >= 400:
            logger.error(f"Profile API error: {response.status_code} - {response.text[:200]}")
            raise ExternalServiceError(
                "Profile request rejected", details={"status": response.status_code}
            )

        if not response.content:
            return []
        return response.json()

    async def _cache(self, profile: UserProfile, **extra: str) -> None:
        await self._storage.multi_set({
            USER_PROFILE_KEY: profile.model_dump_json(by_alias=True),
            USER_ID_KEY: profile.user_id,
            **extra,
        })

    async def get_profile_by_mobile(self, mobile: str) -> Optional[UserProfile]:
        rows = await self._request(
            "GET", params={"Mobile_number": f"eq.{mobile}", "select": "*", "limit": "1"}
        )
        return UserProfile.model_validate(rows[0]) if rows else None

    async def get_or_create_profile(self, mobile: str) -> UserProfile:
        """
        Returns the profile for a mobile number, creating it on first login.

        Args:
            mobile: Bare 10-digit mobile number

        Returns:
            The stored profile (also cached locally)
        """
        profile = await self.get_profile_by_mobile(mobile)

        if profile is None:
            logger.info(f"Creating profile for {mask_mobile(mobile)}")
            rows = await self._request(
                "POST",
                json_body={
                    "User_id": generate_user_id(),
                    "Mobile_number": mobile,
                    "created_at": datetime.now(timezone.utc).isoformat(),
                },
            )
            if not rows:
                raise ExternalServiceError("Failed to create user profile")
            profile = UserProfile.model_validate(rows[0])
        else:
            logger.info(f"Found existing profile for {mask_mobile(mobile)}")

        await self._cache(profile, **{USER_MOBILE_KEY: mobile})
        return profile

    async def save_interests(self, user_id: str, interests: List[str]) -> UserProfile:
        rows = await self._request(
            "PATCH",
            params={"User_id": f"eq.{user_id}"},
            json_body=profile_interest_fields(interests),
        )
        if not rows:
            raise ExternalServiceError("Profile not found", details={"user_id": user_id})

        profile = UserProfile.model_validate(rows[0])
        await self._cache(profile, **{
            USER_INTERESTS_KEY: json.dumps(profile.interests),
            HAS_COMPLETED_ONBOARDING_KEY: MARKER_TRUE,
        })
        logger.info(f"Saved {len(profile.interests)} interests for {user_id}")
        return profile

    async def get_cached_profile(self) -> Optional[UserProfile]:
        raw = await self._storage.get(USER_PROFILE_KEY)
        if not raw:
            return None
        try:
            return UserProfile.model_validate(json.loads(raw))
        except ValueError:
            logger.warning("Ignoring unreadable cached profile")
            return None

    async def record_logout(self, user_id: str) -> None:
        await self._request(
            "PATCH",
            params={"User_id": f"eq.{user_id}"},
            json_body={"last_logout_time": datetime.now(timezone.utc).isoformat()},
        )
