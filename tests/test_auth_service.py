"""
Tests for the hosted auth client against a mocked GoTrue API.
"""

import json
import time
from urllib.parse import parse_qs, urlsplit

import httpx
import jwt
import pytest

from strive.core.exceptions import InvalidOtpError, OAuthProviderError, TransientAuthError
from strive.db.storage import InMemoryKeyValueStore
from strive.flow.states import AuthChangeEvent
from strive.models.identity import OAuthIdentity, Session
from strive.services.auth_service import HostedAuthClient, decode_token_claims
from utils.url_utils import code_challenge_s256

BASE_URL = "https://strive-test.supabase.co"

USER = {
    "id": "u-1",
    "email": "asha@example.com",
    "phone": "",
    "app_metadata": {"provider": "google"},
    "user_metadata": {"full_name": "Asha Rao", "avatar_url": "https://cdn.example.com/a.png"},
}


def token_payload(access_token="new-access", refresh_token="new-refresh", expires_in=3600):
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "expires_in": expires_in,
        "token_type": "bearer",
        "user": USER,
    }


def make_jwt(exp: int) -> str:
    return jwt.encode({"sub": "u-1", "exp": exp}, "test-signing-key-not-used-by-the-client-000", algorithm="HS256")


class Recorder:
    """Mock transport handler that records requests and replies from a route table"""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        reply = self.routes[key]
        if callable(reply):
            return reply(request)
        return reply

    def paths(self):
        return [r.url.path for r in self.requests]


def make_client(routes, storage=None, **kwargs):
    recorder = Recorder(routes)
    storage = storage or InMemoryKeyValueStore()
    client = HostedAuthClient(
        BASE_URL,
        "anon-key",
        storage,
        transport=httpx.MockTransport(recorder),
        **kwargs,
    )
    return client, recorder, storage


async def store_session(storage, expires_at):
    session = Session(
        access_token="old-access",
        refresh_token="old-refresh",
        expires_at=expires_at,
        user=OAuthIdentity.from_user(USER),
    )
    await storage.set("sb-auth-token", session.model_dump_json())
    return session


class TestPkce:
    """Authorize URL and code exchange"""

    @pytest.mark.asyncio
    async def test_authorize_url_carries_challenge_for_stored_verifier(self):
        client, _, storage = make_client({})

        url = await client.get_authorize_url("google", "strive://oauth-callback")

        parts = urlsplit(url)
        params = {k: v[0] for k, v in parse_qs(parts.query).items()}
        verifier = await storage.get("sb-auth-token-code-verifier")
        assert parts.path == "/auth/v1/authorize"
        assert params["provider"] == "google"
        assert params["redirect_to"] == "strive://oauth-callback"
        assert params["code_challenge_method"] == "s256"
        assert params["code_challenge"] == code_challenge_s256(verifier)
        await client.aclose()

    @pytest.mark.asyncio
    async def test_exchange_persists_session_and_emits(self):
        def token(request):
            assert request.url.params["grant_type"] == "pkce"
            body = json.loads(request.content)
            assert body["auth_code"] == "abc"
            assert body["code_verifier"] == "verifier-1"
            return httpx.Response(200, json=token_payload())

        client, _, storage = make_client({("POST", "/auth/v1/token"): token})
        await storage.set("sb-auth-token-code-verifier", "verifier-1")
        events = []
        client.on_auth_state_change(lambda event, session: events.append(event))

        session = await client.exchange_code_for_session("abc")

        assert session.user.user_id == "u-1"
        assert session.user.full_name == "Asha Rao"
        assert await storage.get("sb-auth-token-code-verifier") is None
        stored = json.loads(await storage.get("sb-auth-token"))
        assert stored["access_token"] == "new-access"
        assert events == [AuthChangeEvent.SIGNED_IN]
        await client.aclose()

    @pytest.mark.asyncio
    async def test_exchange_without_verifier_fails(self):
        client, recorder, _ = make_client({})

        with pytest.raises(OAuthProviderError):
            await client.exchange_code_for_session("abc")

        assert recorder.requests == []
        await client.aclose()

    @pytest.mark.asyncio
    async def test_rejected_code_maps_to_provider_error(self):
        client, _, storage = make_client({
            ("POST", "/auth/v1/token"): httpx.Response(
                400, json={"error": "invalid_grant", "error_description": "Auth code expired"}
            ),
        })
        await storage.set("sb-auth-token-code-verifier", "verifier-1")

        with pytest.raises(OAuthProviderError) as exc_info:
            await client.exchange_code_for_session("abc")

        assert exc_info.value.message == "Auth code expired"
        assert await storage.get("sb-auth-token-code-verifier") is None
        await client.aclose()


class TestSetSession:
    """Implicit-flow token adoption"""

    @pytest.mark.asyncio
    async def test_live_tokens_fetch_user(self):
        access_token = make_jwt(int(time.time()) + 3600)

        def user(request):
            assert request.headers["Authorization"] == f"Bearer {access_token}"
            assert request.headers["apikey"] == "anon-key"
            return httpx.Response(200, json=USER)

        client, _, storage = make_client({("GET", "/auth/v1/user"): user})

        session = await client.set_session(access_token, "refresh-1")

        assert session.access_token == access_token
        assert session.expires_at == decode_token_claims(access_token)["exp"]
        assert await storage.get("sb-auth-token") is not None
        await client.aclose()

    @pytest.mark.asyncio
    async def test_expired_tokens_are_refreshed(self):
        client, recorder, _ = make_client({
            ("POST", "/auth/v1/token"): httpx.Response(200, json=token_payload()),
        })

        session = await client.set_session(make_jwt(int(time.time()) - 60), "refresh-1")

        assert session.access_token == "new-access"
        assert recorder.paths() == ["/auth/v1/token"]
        await client.aclose()

    def test_unreadable_token_has_no_claims(self):
        assert decode_token_claims("not-a-jwt") == {}


class TestStoredSession:
    """Reading, refreshing and discarding the persisted session"""

    @pytest.mark.asyncio
    async def test_no_stored_session(self):
        client, recorder, _ = make_client({})

        assert await client.get_session() is None
        assert recorder.requests == []
        await client.aclose()

    @pytest.mark.asyncio
    async def test_fresh_session_is_returned_without_network(self):
        client, recorder, storage = make_client({})
        await store_session(storage, int(time.time()) + 3600)

        session = await client.get_session()

        assert session.access_token == "old-access"
        assert recorder.requests == []
        await client.aclose()

    @pytest.mark.asyncio
    async def test_session_near_expiry_is_refreshed(self):
        def token(request):
            assert request.url.params["grant_type"] == "refresh_token"
            assert json.loads(request.content) == {"refresh_token": "old-refresh"}
            return httpx.Response(200, json=token_payload())

        client, _, storage = make_client({("POST", "/auth/v1/token"): token})
        await store_session(storage, int(time.time()) + 5)
        events = []
        client.on_auth_state_change(lambda event, session: events.append(event))

        session = await client.get_session()

        assert session.access_token == "new-access"
        assert events == [AuthChangeEvent.TOKEN_REFRESHED]
        await client.aclose()

    @pytest.mark.asyncio
    async def test_forced_refresh(self):
        client, recorder, storage = make_client({
            ("POST", "/auth/v1/token"): httpx.Response(200, json=token_payload()),
        })
        assert await client.refresh_session() is None
        assert recorder.requests == []

        await store_session(storage, int(time.time()) + 3600)
        session = await client.refresh_session()

        assert session.refresh_token == "new-refresh"
        assert json.loads(await storage.get("sb-auth-token"))["refresh_token"] == "new-refresh"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_rejected_refresh_clears_session(self):
        client, _, storage = make_client({
            ("POST", "/auth/v1/token"): httpx.Response(400, json={"error": "invalid_grant"}),
        })
        await store_session(storage, int(time.time()) - 60)
        events = []
        client.on_auth_state_change(lambda event, session: events.append(event))

        assert await client.get_session() is None
        assert await storage.get("sb-auth-token") is None
        assert events == [AuthChangeEvent.SIGNED_OUT]
        await client.aclose()

    @pytest.mark.asyncio
    async def test_refresh_reply_after_sign_out_is_dropped(self):
        storage = InMemoryKeyValueStore()

        async def token(request):
            # Sign-out lands while the refresh is in flight
            await storage.remove("sb-auth-token")
            return httpx.Response(200, json=token_payload())

        client = HostedAuthClient(BASE_URL, "anon-key", storage, transport=httpx.MockTransport(token))
        await store_session(storage, int(time.time()) + 5)
        events = []
        client.on_auth_state_change(lambda event, session: events.append(event))

        assert await client.get_session() is None
        assert await storage.get("sb-auth-token") is None
        assert events == []
        await client.aclose()

    @pytest.mark.asyncio
    async def test_rejected_refresh_keeps_newer_session(self):
        storage = InMemoryKeyValueStore()
        newer = Session.from_token_response(token_payload("other-access", "other-refresh"))

        async def token(request):
            # A new sign-in replaces the session while the refresh is in flight
            await storage.set("sb-auth-token", newer.model_dump_json())
            return httpx.Response(400, json={"error": "invalid_grant"})

        client = HostedAuthClient(BASE_URL, "anon-key", storage, transport=httpx.MockTransport(token))
        await store_session(storage, int(time.time()) - 60)
        events = []
        client.on_auth_state_change(lambda event, session: events.append(event))

        assert await client.get_session() is None
        assert json.loads(await storage.get("sb-auth-token"))["refresh_token"] == "other-refresh"
        assert events == []
        await client.aclose()

    @pytest.mark.asyncio
    async def test_unreadable_stored_session_is_discarded(self):
        client, _, storage = make_client({})
        await storage.set("sb-auth-token", "{not json")

        assert await client.get_session() is None
        assert await storage.get("sb-auth-token") is None
        await client.aclose()


class TestErrors:
    """Failure mapping and retries"""

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self):
        client, _, _ = make_client({("POST", "/auth/v1/otp"): httpx.Response(503)})

        with pytest.raises(TransientAuthError) as exc_info:
            await client.send_otp("+919876543210")

        assert exc_info.value.recoverable is True
        await client.aclose()

    @pytest.mark.asyncio
    async def test_idempotent_call_retries_once_on_network_error(self):
        attempts = []

        def user(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("connection reset")
            return httpx.Response(200, json=USER)

        client, _, _ = make_client({("GET", "/auth/v1/user"): user})

        identity = await client.get_user("access-1")

        assert identity.user_id == "u-1"
        assert len(attempts) == 2
        await client.aclose()

    @pytest.mark.asyncio
    async def test_non_idempotent_call_is_not_retried(self):
        attempts = []

        def otp(request):
            attempts.append(request)
            raise httpx.ConnectError("connection reset")

        client, _, _ = make_client({("POST", "/auth/v1/otp"): otp})

        with pytest.raises(TransientAuthError):
            await client.send_otp("+919876543210")

        assert len(attempts) == 1
        await client.aclose()

    @pytest.mark.asyncio
    async def test_rejected_otp(self):
        def verify(request):
            assert json.loads(request.content) == {
                "type": "sms", "phone": "+919876543210", "token": "000000"
            }
            return httpx.Response(400, json={"msg": "Token has expired or is invalid"})

        client, _, _ = make_client({("POST", "/auth/v1/verify"): verify})

        with pytest.raises(InvalidOtpError):
            await client.verify_otp("+919876543210", "000000")

        await client.aclose()

    @pytest.mark.asyncio
    async def test_listener_failure_is_contained(self):
        client, _, storage = make_client({
            ("POST", "/auth/v1/logout"): httpx.Response(204),
        })
        await store_session(storage, int(time.time()) + 3600)

        def broken(event, session):
            raise RuntimeError("listener bug")

        client.on_auth_state_change(broken)
        await client.sign_out()

        assert await storage.get("sb-auth-token") is None
        await client.aclose()


class TestSignOut:
    """Hosted session revocation"""

    @pytest.mark.asyncio
    async def test_sign_out_without_session_is_noop(self):
        client, recorder, _ = make_client({})

        await client.sign_out()

        assert recorder.requests == []
        await client.aclose()

    @pytest.mark.asyncio
    async def test_local_session_removed_when_revoke_fails(self):
        client, _, storage = make_client({("POST", "/auth/v1/logout"): httpx.Response(500)})
        await store_session(storage, int(time.time()) + 3600)
        events = []
        client.on_auth_state_change(lambda event, session: events.append(event))

        with pytest.raises(TransientAuthError):
            await client.sign_out()

        assert await storage.get("sb-auth-token") is None
        assert events == [AuthChangeEvent.SIGNED_OUT]
        await client.aclose()

    @pytest.mark.asyncio
    async def test_already_revoked_session(self):
        def logout(request):
            assert request.headers["Authorization"] == "Bearer old-access"
            return httpx.Response(401, json={"msg": "invalid JWT"})

        client, _, storage = make_client({("POST", "/auth/v1/logout"): logout})
        await store_session(storage, int(time.time()) + 3600)

        await client.sign_out()

        assert await storage.get("sb-auth-token") is None
        await client.aclose()

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        client, _, storage = make_client({("POST", "/auth/v1/logout"): httpx.Response(204)})
        await store_session(storage, int(time.time()) + 3600)
        events = []
        unsubscribe = client.on_auth_state_change(lambda event, session: events.append(event))

        unsubscribe()
        await client.sign_out()

        assert events == []
        await client.aclose()
