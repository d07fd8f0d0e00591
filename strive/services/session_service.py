"""
strive/services/session_service.py

Purpose: Session reconciliation across OAuth and OTP login paths

- Single published AuthState for the UI shell
- Probe: hosted session first, then local OTP markers
- Re-probe on foreground and on hosted auth events (no polling)
- OAuth browser round trip bounded by a timeout
- Sign-out tears down both paths

Ordering:
- Every probe and mutating operation takes a generation number. A probe
  result is committed only if no newer operation started meanwhile, so a
  slow probe can never overwrite a later sign-in or sign-out.
- Mutating operations are serialized by a lock that is never held across
  the browser wait.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Callable, List, Optional, Set, Tuple, Union

from strive.core.exceptions import (
    AuthCancelledError,
    OAuthCallbackError,
    OAuthProviderError,
    OAuthTimeoutError,
    RecoverableAuthError,
    StriveError,
    ValidationError,
)
from strive.core.logging import get_logger
from strive.db.storage import KeyValueStore
from strive.flow.states import (
    AppState,
    AuthChangeEvent,
    is_foreground_transition,
    is_valid_transition,
)
from strive.models.identity import AuthState, OAuthIdentity, OtpIdentity, Session
from strive.services.auth_service import HostedAuthClient
from strive.services.browser_service import AuthBrowser
from strive.services.profile_service import ProfileService
from utils.constants import (
    HAS_COMPLETED_ONBOARDING_KEY,
    INCOMPLETE_OTP_MESSAGE,
    INVALID_MOBILE_MESSAGE,
    IS_LOGGED_IN_KEY,
    LOGIN_CANCELLED_MESSAGE,
    LOGIN_TIMEOUT_MESSAGE,
    MARKER_TRUE,
    NO_INTERESTS_MESSAGE,
    OTP_PROBE_KEYS,
    SESSION_MARKER_KEYS,
    USER_EMAIL_KEY,
    USER_ID_KEY,
    USER_INTERESTS_KEY,
    USER_MOBILE_KEY,
)
from utils.url_utils import AuthCallback, parse_auth_callback
from utils.validation_utils import (
    mask_mobile,
    normalize_mobile_number,
    sanitize_input,
    to_e164,
    validate_interests,
    validate_otp_format,
)

logger = get_logger(__name__)

StateListener = Callable[[AuthState], None]
ProbeResult = Tuple[Optional[Union[OAuthIdentity, OtpIdentity]], bool]


class _Operation:
    """In-flight operation; holds the loading flag while pending."""

    def __init__(self, name: str):
        self.name = name
        self.generation: Optional[int] = None

    def __repr__(self) -> str:
        return f"<_Operation {self.name} gen={self.generation}>"


class SessionManager:
    """
    Owns the published AuthState and every transition of it.
    """

    def __init__(
        self,
        auth_client: HostedAuthClient,
        storage: KeyValueStore,
        browser: AuthBrowser,
        profiles: Optional[ProfileService] = None,
        *,
        oauth_provider: str = "google",
        redirect_url: str = "strive://oauth-callback",
        oauth_timeout: float = 15.0,
        phone_country_code: str = "+91",
    ):
        self._auth = auth_client
        self._storage = storage
        self._browser = browser
        self._profiles = profiles
        self._oauth_provider = oauth_provider
        self._redirect_url = redirect_url
        self._oauth_timeout = oauth_timeout
        self._country_code = phone_country_code

        self._state = AuthState()
        self._listeners: List[StateListener] = []
        self._generation = 0
        self._pending: Set[_Operation] = set()
        self._awaiting_browser: Set[_Operation] = set()
        self._lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribe_auth: Optional[Callable[[], None]] = None
        self._app_state = AppState.ACTIVE

    # ------------------------------------------------------------
    # Published state
    # ------------------------------------------------------------

    def get_state(self) -> AuthState:
        return self._state

    @property
    def state(self) -> AuthState:
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Registers a listener called with every new AuthState.
        Returns a function that unsubscribes it.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception as e:
                logger.error(f"State listener failed: {e}", exc_info=True)

    def _set(self, **changes) -> None:
        previous = self._state.status
        self._state = self._state.evolve(**changes)
        current = self._state.status
        if previous != current:
            if not is_valid_transition(previous, current):
                logger.warning(f"Unexpected session transition {previous.value} -> {current.value}")
            logger.info(
                f"Session state: {previous.value} -> {current.value}",
                extra={"session_state": current.value, "generation": self._generation},
            )
        self._publish()

    def _advance(self) -> int:
        self._generation += 1
        return self._generation

    def _commit(self, generation: int, **changes) -> bool:
        """Applies changes unless a newer operation has started since `generation`."""
        if generation != self._generation:
            logger.debug(
                f"Dropping stale result (generation {generation}, current {self._generation})",
                extra={"generation": generation},
            )
            return False
        self._set(**changes)
        return True

    def _commit_now(self, **changes) -> None:
        self._commit(self._advance(), **changes)

    def _sync_loading(self) -> None:
        loading = bool(self._pending)
        if loading != self._state.loading:
            self._set(loading=loading)

    def _clear_error(self) -> None:
        if self._state.error is not None:
            self._set(error=None)

    @asynccontextmanager
    async def _operation(self, name: str, awaits_browser: bool = False):
        """
        Tracks an operation in the loading set and records its failure
        as the published error instead of raising.
        """
        op = _Operation(name)
        self._pending.add(op)
        if awaits_browser:
            self._awaiting_browser.add(op)
        self._sync_loading()
        try:
            yield op
        except StriveError as e:
            self._record_error(op, e)
        except Exception as e:
            logger.error(f"Unexpected error during {name}: {e}", exc_info=True, extra={"operation": name})
            self._record_error(op, StriveError(str(e) or e.__class__.__name__))
        finally:
            self._pending.discard(op)
            self._awaiting_browser.discard(op)
            self._sync_loading()

    def _record_error(self, op: _Operation, error: StriveError) -> None:
        if op.generation is not None and op.generation != self._generation:
            logger.debug(f"Dropping stale {op.name} failure: {error.message}")
            return
        logger.warning(
            f"{op.name} failed: {error.message}",
            extra={"operation": op.name},
        )
        changes = {"error": error}
        if op.generation is not None:
            # A failed probe still settles the initial UNKNOWN state
            changes["resolved"] = True
        self._set(**changes)

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------

    async def start(self, initial_url: Optional[str] = None) -> AuthState:
        """
        Subscribes to hosted auth events, runs the initial probe and handles
        a cold-start deep link if one was passed.
        """
        if self._unsubscribe_auth is None:
            self._unsubscribe_auth = self._auth.on_auth_state_change(self._handle_auth_event)

        logger.info("Initializing auth")
        await self.refresh()

        if initial_url:
            await self.handle_callback_url(initial_url)

        return self._state

    async def stop(self) -> None:
        if self._unsubscribe_auth is not None:
            self._unsubscribe_auth()
            self._unsubscribe_auth = None

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _handle_auth_event(self, event: AuthChangeEvent, session: Optional[Session]) -> None:
        logger.info(f"Auth state changed: {event.value}")

        if event == AuthChangeEvent.SIGNED_IN:
            if session is not None:
                self._commit_now(user=session.user, resolved=True, onboarding_pending=False)
            return

        if event == AuthChangeEvent.TOKEN_REFRESHED:
            # Only updates an OAuth user that is still current; the probe
            # or operation that caused the refresh commits everything else
            if session is None or self._lock.locked():
                return
            if not isinstance(self._state.user, OAuthIdentity):
                return
            self._commit_now(user=session.user, resolved=True, onboarding_pending=False)
            return

        if event == AuthChangeEvent.SIGNED_OUT:
            if self._lock.locked():
                # The running mutating operation commits its own result
                return
            self._spawn(self.refresh())

    # ------------------------------------------------------------
    # Probe
    # ------------------------------------------------------------

    async def _probe(self) -> ProbeResult:
        """
        Hosted session wins; otherwise all three OTP markers must be present.

        Returns:
            (identity or None, whether a phone login is waiting on onboarding)
        """
        session = await self._auth.get_session()
        if session is not None:
            return session.user, False

        markers = await self._storage.multi_get(OTP_PROBE_KEYS)
        logged_in = markers.get(IS_LOGGED_IN_KEY) == MARKER_TRUE
        mobile = markers.get(USER_MOBILE_KEY)

        if logged_in and mobile:
            if markers.get(HAS_COMPLETED_ONBOARDING_KEY) == MARKER_TRUE:
                return OtpIdentity(phone=mobile), False
            return None, True

        return None, False

    async def _reconcile(self, op: _Operation) -> None:
        op.generation = self._advance()
        user, onboarding_pending = await self._probe()
        self._commit(
            op.generation,
            user=user,
            resolved=True,
            onboarding_pending=onboarding_pending,
        )

    async def refresh(self) -> AuthState:
        """
        Re-reads both sources and publishes the result. On failure the
        previous user is kept and the error is published.
        """
        async with self._operation("refresh") as op:
            await self._reconcile(op)
        return self._state

    # ------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------

    async def sign_in_with_oauth(self) -> AuthState:
        """
        Runs the browser round trip and completes it with the redirect.
        """
        async with self._operation("sign_in_with_oauth", awaits_browser=True) as op:
            self._clear_error()
            url = await self._auth.get_authorize_url(self._oauth_provider, self._redirect_url)
            logger.info(f"Opening OAuth URL for {self._oauth_provider}", extra={"operation": op.name})

            try:
                result = await asyncio.wait_for(
                    self._browser.open_auth_session(url, self._redirect_url),
                    timeout=self._oauth_timeout,
                )
            except asyncio.TimeoutError:
                self._browser.dismiss()
                raise OAuthTimeoutError(
                    LOGIN_TIMEOUT_MESSAGE, details={"timeout_seconds": self._oauth_timeout}
                ) from None

            self._awaiting_browser.discard(op)

            if result.type != "success":
                logger.info(f"OAuth browser closed without redirect ({result.type})")
                raise AuthCancelledError(LOGIN_CANCELLED_MESSAGE, details={"result": result.type})

            callback = parse_auth_callback(result.url)
            if not callback.is_auth_callback:
                raise OAuthCallbackError()
            await self._complete_oauth(callback)

        return self._state

    async def handle_callback_url(self, url: str) -> AuthState:
        """
        Completes sign-in from a deep link. Links without auth parameters
        are ignored.
        """
        callback = parse_auth_callback(url)
        if not callback.is_auth_callback:
            logger.debug("Ignoring deep link without auth parameters")
            return self._state

        async with self._operation("handle_callback_url"):
            self._clear_error()
            await self._complete_oauth(callback)

        return self._state

    async def _complete_oauth(self, callback: AuthCallback) -> None:
        if callback.is_error:
            message = callback.error_description or callback.error
            raise OAuthProviderError(f"OAuth error: {message}", details={"error": callback.error})

        async with self._lock:
            if callback.has_tokens:
                session = await self._auth.set_session(callback.access_token, callback.refresh_token)
            else:
                session = await self._auth.exchange_code_for_session(callback.code)
            self._commit_now(user=session.user, resolved=True, onboarding_pending=False)

        logger.info("Login successful", extra={"provenance": "oauth"})

    # ------------------------------------------------------------
    # OTP
    # ------------------------------------------------------------

    def _require_mobile(self, phone: str) -> str:
        mobile = normalize_mobile_number(phone)
        if mobile is None:
            raise ValidationError(INVALID_MOBILE_MESSAGE)
        return mobile

    async def send_otp(self, phone: str) -> AuthState:
        async with self._operation("send_otp"):
            self._clear_error()
            mobile = self._require_mobile(phone)
            await self._auth.send_otp(to_e164(mobile, self._country_code))
            logger.info(f"OTP sent to {mask_mobile(mobile)}")
        return self._state

    async def sign_in_with_otp(self, phone: str, code: str, email: Optional[str] = None) -> AuthState:
        """
        Verifies the code, ensures a profile exists and writes the local
        login markers. Users without interests are left pending onboarding.
        """
        async with self._operation("sign_in_with_otp") as op:
            self._clear_error()
            mobile = self._require_mobile(phone)
            if not validate_otp_format(code):
                raise ValidationError(INCOMPLETE_OTP_MESSAGE)

            await self._auth.verify_otp(to_e164(mobile, self._country_code), code.strip())

            completed = False
            if self._profiles is not None:
                profile = await self._profiles.get_or_create_profile(mobile)
                completed = profile.has_interests

            async with self._lock:
                markers = {IS_LOGGED_IN_KEY: MARKER_TRUE, USER_MOBILE_KEY: mobile}
                if email:
                    markers[USER_EMAIL_KEY] = sanitize_input(email)
                if completed:
                    markers[HAS_COMPLETED_ONBOARDING_KEY] = MARKER_TRUE
                await self._storage.multi_set(markers)
                await self._reconcile(op)

            logger.info(
                f"OTP login for {mask_mobile(mobile)} (onboarding {'done' if completed else 'pending'})",
                extra={"provenance": "otp"},
            )
        return self._state

    async def complete_onboarding(self, interests: List[str]) -> AuthState:
        async with self._operation("complete_onboarding") as op:
            self._clear_error()
            interests = validate_interests(interests)
            if not interests:
                raise ValidationError(NO_INTERESTS_MESSAGE)

            async with self._lock:
                values = await self._storage.multi_get([IS_LOGGED_IN_KEY, USER_MOBILE_KEY, USER_ID_KEY])
                mobile = values.get(USER_MOBILE_KEY)
                if values.get(IS_LOGGED_IN_KEY) != MARKER_TRUE or not mobile:
                    raise RecoverableAuthError(
                        "Sign in with your phone before choosing interests",
                        code="NOT_AUTHENTICATED",
                    )

                if self._profiles is not None:
                    user_id = values.get(USER_ID_KEY)
                    if not user_id:
                        user_id = (await self._profiles.get_or_create_profile(mobile)).user_id
                    # Also sets the onboarding marker
                    await self._profiles.save_interests(user_id, interests)
                else:
                    await self._storage.multi_set({
                        USER_INTERESTS_KEY: json.dumps(interests),
                        HAS_COMPLETED_ONBOARDING_KEY: MARKER_TRUE,
                    })
                await self._reconcile(op)
        return self._state

    # ------------------------------------------------------------
    # Sign-out
    # ------------------------------------------------------------

    async def sign_out(self) -> AuthState:
        """
        Ends the hosted session, then clears every local marker. Local
        teardown runs even when the hosted call fails; that failure is
        published as the error.
        """
        async with self._operation("sign_out"):
            async with self._lock:
                user_id = await self._storage.get(USER_ID_KEY)

                hosted_error = None
                try:
                    await self._auth.sign_out()
                except StriveError as e:
                    logger.warning(f"Hosted sign-out failed, clearing local markers anyway: {e.message}")
                    hosted_error = e

                teardown_error = hosted_error
                try:
                    await self._storage.multi_remove(SESSION_MARKER_KEYS)
                except StriveError as e:
                    logger.error(f"Could not clear local session markers: {e.message}")
                    teardown_error = e
                finally:
                    # The user is signed out in memory whatever storage did
                    self._commit_now(
                        user=None, error=teardown_error, resolved=True, onboarding_pending=False
                    )
                logger.info("User logged out")

            if user_id and self._profiles is not None:
                try:
                    await self._profiles.record_logout(user_id)
                except StriveError as e:
                    logger.warning(f"Could not record logout time for {user_id}: {e.message}")

        return self._state

    # ------------------------------------------------------------
    # App lifecycle
    # ------------------------------------------------------------

    async def handle_app_state_change(self, next_state: Union[AppState, str]) -> AuthState:
        """
        Re-probes when the app returns to the foreground. A browser wait
        abandoned by that return stops holding the loading flag.
        """
        next_state = AppState(next_state)
        previous = self._app_state
        self._app_state = next_state

        if not is_foreground_transition(previous, next_state):
            return self._state

        logger.info("App became active, refreshing auth")
        for op in list(self._awaiting_browser):
            self._pending.discard(op)
        self._sync_loading()

        return await self.refresh()

