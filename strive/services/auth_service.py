"""
strive/services/auth_service.py

Purpose: Hosted auth client (GoTrue REST API over httpx)

- PKCE authorize URL, code exchange and implicit-token adoption
- Session persistence in the local key-value store with refresh-on-read
- Phone OTP send/verify
- Auth state change listeners (SIGNED_IN, SIGNED_OUT, TOKEN_REFRESHED)
"""

import asyncio
import json
import time
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlencode

import httpx
import jwt

from strive.core.exceptions import (
    InvalidOtpError,
    OAuthProviderError,
    TransientAuthError,
)
from strive.core.logging import get_logger
from strive.db.storage import KeyValueStore
from strive.flow.states import AuthChangeEvent
from strive.models.identity import OAuthIdentity, Session
from utils.constants import INVALID_OTP_MESSAGE
from utils.url_utils import code_challenge_s256, generate_code_verifier

logger = get_logger(__name__)

AuthListener = Callable[[AuthChangeEvent, Optional[Session]], None]


def decode_token_claims(access_token: str) -> Dict[str, Any]:
    """
    Reads JWT claims without verifying the signature.

    The hosted service is the verifier; the client only needs `exp`.
    """
    try:
        return jwt.decode(access_token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        logger.warning("Access token is not a readable JWT")
        return {}


class HostedAuthClient:
    """Client for the hosted identity service."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        storage: KeyValueStore,
        *,
        storage_key: str = "sb-auth-token",
        expiry_margin_seconds: int = 10,
        timeout: float = 10.0,
        max_retries: int = 1,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.auth_url = f"{base_url.rstrip('/')}/auth/v1"
        self.storage_key = storage_key
        self._api_key = api_key
        self._storage = storage
        self._expiry_margin = expiry_margin_seconds
        self._max_retries = max_retries
        self._listeners: List[AuthListener] = []
        # Guards read-compare-write of the stored session
        self._session_lock = asyncio.Lock()
        self._http = httpx.AsyncClient(
            base_url=self.auth_url,
            timeout=timeout,
            headers={"apikey": api_key, "Content-Type": "application/json"},
            transport=transport,
        )

    @property
    def code_verifier_key(self) -> str:
        return f"{self.storage_key}-code-verifier"

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------

    def on_auth_state_change(self, callback: AuthListener) -> Callable[[], None]:
        """
        Registers a listener. Returns a function that unsubscribes it.
        """
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _emit(self, event: AuthChangeEvent, session: Optional[Session]) -> None:
        logger.debug(f"Emitting auth event {event.value}")
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception as e:
                logger.error(f"Auth listener failed on {event.value}: {e}", exc_info=True)

    # ------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        access_token: Optional[str] = None,
        idempotent: bool = False,
    ) -> httpx.Response:
        """
        Sends a request and maps failures onto the auth error taxonomy.

        Network errors and 5xx raise TransientAuthError; other non-2xx
        responses raise OAuthProviderError.
        """
        headers = {"Authorization": f"Bearer {access_token or self._api_key}"}
        attempts = 1 + (self._max_retries if idempotent else 0)

        for attempt in range(1, attempts + 1):
            try:
                response = await self._http.request(
                    method, path, params=params, json=json_body, headers=headers
                )
                break
            except httpx.TimeoutException as e:
                logger.warning(f"Auth service timeout on {path} (attempt {attempt}/{attempts})")
                if attempt == attempts:
                    raise TransientAuthError(
                        "Auth service timeout", details={"path": path}
                    ) from e
            except httpx.RequestError as e:
                logger.warning(f"Network error calling auth service {path}: {e}")
                if attempt == attempts:
                    raise TransientAuthError(
                        "Network error connecting to auth service", details={"path": path}
                    ) from e

        if response.status_code >= 500:
            logger.error(f"Auth service error: {response.status_code} on {path}")
            raise TransientAuthError(
                "Auth service unavailable",
                details={"path": path, "status": response.status_code},
            )

        if response.status_code >= 400:
            message = self._error_message(response)
            logger.warning(f"Auth service rejected {path}: {response.status_code} - {message}")
            raise OAuthProviderError(
                message, details={"path": path, "status": response.status_code}
            )

        return response

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text[:200] or f"HTTP {response.status_code}"
        if not isinstance(data, dict):
            return f"HTTP {response.status_code}"
        return (
            data.get("error_description")
            or data.get("msg")
            or data.get("message")
            or data.get("error")
            or f"HTTP {response.status_code}"
        )

    # ------------------------------------------------------------
    # Session persistence
    # ------------------------------------------------------------

    async def _load_session(self) -> Optional[Session]:
        raw = await self._storage.get(self.storage_key)
        if not raw:
            return None
        try:
            return Session.model_validate(json.loads(raw))
        except ValueError as e:
            logger.warning(f"Discarding unreadable stored session: {e}")
            await self._storage.remove(self.storage_key)
            return None

    async def _save_session(self, session: Session) -> None:
        async with self._session_lock:
            await self._storage.set(self.storage_key, session.model_dump_json())

    async def _remove_session(self) -> None:
        async with self._session_lock:
            await self._storage.remove(self.storage_key)

    async def _still_stored(self, refresh_token: str) -> bool:
        """True if the stored session is still the one holding `refresh_token`."""
        current = await self._load_session()
        return current is not None and current.refresh_token == refresh_token

    async def get_session(self) -> Optional[Session]:
        """
        Returns the persisted session, refreshing it when close to expiry.

        Returns None when there is no session or the refresh token was rejected.
        """
        session = await self._load_session()
        if session is None:
            return None
        if session.is_expired(self._expiry_margin):
            logger.info("Stored session near expiry, refreshing")
            return await self._refresh(session.refresh_token)
        return session

    async def refresh_session(self) -> Optional[Session]:
        """Forces a refresh of the persisted session, if any."""
        session = await self._load_session()
        if session is None:
            return None
        return await self._refresh(session.refresh_token)

    async def _refresh(self, refresh_token: str, *, adopt: bool = False) -> Optional[Session]:
        """
        Exchanges a refresh token for a new session.

        The result is stored only if the stored session still holds
        `refresh_token` when the reply arrives. A sign-out or new sign-in
        during the request makes the reply stale: it is dropped, nothing is
        emitted and None is returned. With `adopt`, the tokens come from a
        redirect rather than storage and the result is always stored.
        """
        try:
            response = await self._request(
                "POST",
                "/token",
                params={"grant_type": "refresh_token"},
                json_body={"refresh_token": refresh_token},
                idempotent=True,
            )
        except OAuthProviderError:
            async with self._session_lock:
                if not adopt and not await self._still_stored(refresh_token):
                    logger.info("Refresh rejected for a session that is no longer stored")
                    return None
                logger.warning("Refresh token rejected, clearing stored session")
                await self._storage.remove(self.storage_key)
            self._emit(AuthChangeEvent.SIGNED_OUT, None)
            return None

        session = Session.from_token_response(response.json())
        async with self._session_lock:
            if not adopt and not await self._still_stored(refresh_token):
                logger.info("Dropping refreshed session, stored session changed during refresh")
                return None
            await self._storage.set(self.storage_key, session.model_dump_json())
        self._emit(AuthChangeEvent.TOKEN_REFRESHED, session)
        return session

    # ------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------

    async def get_authorize_url(self, provider: str, redirect_to: str) -> str:
        """
        Builds the provider authorize URL and stores a fresh PKCE verifier.
        """
        verifier = generate_code_verifier()
        await self._storage.set(self.code_verifier_key, verifier)
        params = {
            "provider": provider,
            "redirect_to": redirect_to,
            "code_challenge": code_challenge_s256(verifier),
            "code_challenge_method": "s256",
        }
        return f"{self.auth_url}/authorize?{urlencode(params)}"

    async def exchange_code_for_session(self, code: str) -> Session:
        verifier = await self._storage.get(self.code_verifier_key)
        if not verifier:
            raise OAuthProviderError(
                "No pending sign-in for this authorization code",
                details={"reason": "missing_code_verifier"},
            )

        try:
            response = await self._request(
                "POST",
                "/token",
                params={"grant_type": "pkce"},
                json_body={"auth_code": code, "code_verifier": verifier},
            )
        finally:
            await self._storage.remove(self.code_verifier_key)

        session = Session.from_token_response(response.json())
        await self._save_session(session)
        logger.info("OAuth code exchanged for session", extra={"provenance": "oauth"})
        self._emit(AuthChangeEvent.SIGNED_IN, session)
        return session

    async def get_user(self, access_token: str) -> OAuthIdentity:
        response = await self._request("GET", "/user", access_token=access_token, idempotent=True)
        return OAuthIdentity.from_user(response.json())

    async def set_session(self, access_token: str, refresh_token: str) -> Session:
        """
        Adopts tokens delivered in an implicit-flow redirect fragment.
        """
        claims = decode_token_claims(access_token)
        expires_at = claims.get("exp")

        if expires_at is not None and expires_at <= time.time():
            session = await self._refresh(refresh_token, adopt=True)
            if session is None:
                raise OAuthProviderError("Sign-in tokens have expired")
            return session

        user = await self.get_user(access_token)
        session = Session(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            user=user,
        )
        await self._save_session(session)
        logger.info("Adopted session from redirect tokens", extra={"provenance": "oauth"})
        self._emit(AuthChangeEvent.SIGNED_IN, session)
        return session

    async def sign_out(self) -> None:
        """
        Revokes the hosted session. The local session is removed even when
        the revoke call fails.
        """
        session = await self._load_session()
        if session is None:
            return

        try:
            await self._request(
                "POST", "/logout", params={"scope": "global"}, access_token=session.access_token
            )
        except OAuthProviderError:
            # 401/404: already gone server-side
            logger.info("Hosted session was already invalid")
        finally:
            await self._remove_session()
            await self._storage.remove(self.code_verifier_key)
            self._emit(AuthChangeEvent.SIGNED_OUT, None)

    # ------------------------------------------------------------
    # Phone OTP
    # ------------------------------------------------------------

    async def send_otp(self, phone: str) -> None:
        await self._request("POST", "/otp", json_body={"phone": phone})

    async def verify_otp(self, phone: str, token: str) -> None:
        """
        Verifies an SMS code. The hosted session in the response is not
        adopted; OTP logins are tracked by local markers.
        """
        try:
            await self._request(
                "POST", "/verify", json_body={"type": "sms", "phone": phone, "token": token}
            )
        except OAuthProviderError as e:
            raise InvalidOtpError(INVALID_OTP_MESSAGE, details=e.details) from e
