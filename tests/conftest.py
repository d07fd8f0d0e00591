import asyncio
import os
from typing import Callable, Dict, List, Optional

# Settings are read at import time
os.environ.setdefault("SUPABASE_URL", "https://strive-test.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("ENVIRONMENT", "development")

import pytest

from strive.core.exceptions import InvalidOtpError, StriveError
from strive.db.storage import InMemoryKeyValueStore
from strive.flow.states import AuthChangeEvent
from strive.models.identity import OAuthIdentity, Session
from strive.models.profile import UserProfile
from strive.services.browser_service import BrowserResult
from strive.services.session_service import SessionManager


def make_session(user_id: str = "oauth-user-1", email: str = "asha@example.com") -> Session:
    return Session(
        access_token=f"access-{user_id}",
        refresh_token=f"refresh-{user_id}",
        expires_at=4102444800,
        user=OAuthIdentity(user_id=user_id, email=email, provider_id="google"),
    )


class FakeAuthClient:
    """In-process stand-in for HostedAuthClient."""

    def __init__(self):
        self.session: Optional[Session] = None
        self.listeners: List[Callable] = []
        self.calls: List[str] = []
        self.probe_gate: Optional[asyncio.Event] = None
        self.probe_error: Optional[StriveError] = None
        self.sign_out_error: Optional[StriveError] = None
        self.valid_otp = "123456"
        self.sent_otps: List[str] = []

    def on_auth_state_change(self, callback):
        self.listeners.append(callback)

        def unsubscribe():
            if callback in self.listeners:
                self.listeners.remove(callback)

        return unsubscribe

    def emit(self, event: AuthChangeEvent, session: Optional[Session]) -> None:
        for listener in list(self.listeners):
            listener(event, session)

    async def get_session(self) -> Optional[Session]:
        self.calls.append("get_session")
        # Snapshot before waiting, like a slow network read
        session = self.session
        if self.probe_gate is not None:
            await self.probe_gate.wait()
        if self.probe_error is not None:
            raise self.probe_error
        return session

    async def get_authorize_url(self, provider: str, redirect_to: str) -> str:
        self.calls.append("get_authorize_url")
        return f"https://strive-test.supabase.co/auth/v1/authorize?provider={provider}"

    async def set_session(self, access_token: str, refresh_token: str) -> Session:
        self.calls.append("set_session")
        self.session = make_session("token-user")
        self.emit(AuthChangeEvent.SIGNED_IN, self.session)
        return self.session

    async def exchange_code_for_session(self, code: str) -> Session:
        self.calls.append("exchange_code_for_session")
        self.session = make_session("code-user")
        self.emit(AuthChangeEvent.SIGNED_IN, self.session)
        return self.session

    async def sign_out(self) -> None:
        self.calls.append("sign_out")
        had_session = self.session is not None
        self.session = None
        if had_session:
            self.emit(AuthChangeEvent.SIGNED_OUT, None)
        if self.sign_out_error is not None:
            raise self.sign_out_error

    async def send_otp(self, phone: str) -> None:
        self.calls.append("send_otp")
        self.sent_otps.append(phone)

    async def verify_otp(self, phone: str, token: str) -> None:
        self.calls.append("verify_otp")
        if token != self.valid_otp:
            raise InvalidOtpError()


class FakeBrowser:
    """Browser whose round trip resolves with a preset result or waits forever."""

    def __init__(self, result: Optional[BrowserResult] = None):
        self.result = result
        self.opened: List[str] = []
        self.dismissed = 0
        self.waiting = asyncio.Event()
        self._future: Optional[asyncio.Future] = None

    async def open_auth_session(self, url: str, redirect_url: str) -> BrowserResult:
        self.opened.append(url)
        self.waiting.set()
        if self.result is not None:
            return self.result
        self._future = asyncio.get_running_loop().create_future()
        return await self._future

    def complete(self, result: BrowserResult) -> None:
        self._future.set_result(result)

    def dismiss(self) -> None:
        self.dismissed += 1


class FakeProfiles:
    def __init__(self, storage, interests: Optional[List[str]] = None):
        self.storage = storage
        self.profiles: Dict[str, UserProfile] = {}
        self.default_interests = interests or []
        self.logouts: List[str] = []
        self.record_logout_error: Optional[StriveError] = None

    async def get_or_create_profile(self, mobile: str) -> UserProfile:
        if mobile not in self.profiles:
            fields = {f"Interest_cat_{i + 1}": v for i, v in enumerate(self.default_interests)}
            self.profiles[mobile] = UserProfile(User_id=f"user_{mobile}", Mobile_number=mobile, **fields)
        profile = self.profiles[mobile]
        await self.storage.multi_set({"userId": profile.user_id, "userMobile": mobile})
        return profile

    async def save_interests(self, user_id: str, interests: List[str]) -> UserProfile:
        for mobile, profile in self.profiles.items():
            if profile.user_id == user_id:
                updated = profile.model_copy(update={
                    f"interest_cat_{i + 1}": v for i, v in enumerate(interests[:3])
                })
                self.profiles[mobile] = updated
                await self.storage.set("hasCompletedOnboarding", "true")
                return updated
        raise StriveError("Profile not found", code="EXTERNAL_SERVICE_ERROR", status_code=502)

    async def record_logout(self, user_id: str) -> None:
        self.logouts.append(user_id)
        if self.record_logout_error is not None:
            raise self.record_logout_error


@pytest.fixture
def storage():
    return InMemoryKeyValueStore()


@pytest.fixture
def auth_client():
    return FakeAuthClient()


@pytest.fixture
def browser():
    return FakeBrowser()


@pytest.fixture
def profiles(storage):
    return FakeProfiles(storage)


@pytest.fixture
def manager(auth_client, storage, browser, profiles):
    return SessionManager(
        auth_client,
        storage,
        browser,
        profiles,
        oauth_timeout=0.5,
    )


@pytest.fixture
def otp_markers():
    return {
        "isLoggedIn": "true",
        "hasCompletedOnboarding": "true",
        "userMobile": "9876543210",
    }
