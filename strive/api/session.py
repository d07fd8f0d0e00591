"""
strive/api/session.py

Purpose: Session endpoints for the UI shell

- Read the published auth state
- Trigger OAuth, OTP, onboarding and sign-out
- Report app lifecycle changes and deep links

Operation failures are part of the returned state (error field), not
HTTP errors. Only malformed requests are rejected.
"""

from fastapi import APIRouter, Depends, Request

from strive.core.logging import get_logger
from strive.schemas.session import (
    AppStateRequest,
    CallbackRequest,
    OnboardingRequest,
    OtpSendRequest,
    OtpVerifyRequest,
    SessionStateResponse,
)
from strive.services.session_service import SessionManager

logger = get_logger(__name__)
router = APIRouter(prefix="/session")


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


@router.get("", response_model=SessionStateResponse)
async def get_session(manager: SessionManager = Depends(get_session_manager)):
    return SessionStateResponse.from_state(manager.get_state())


@router.post("/refresh", response_model=SessionStateResponse)
async def refresh_session(manager: SessionManager = Depends(get_session_manager)):
    state = await manager.refresh()
    return SessionStateResponse.from_state(state)


@router.post("/oauth", response_model=SessionStateResponse)
async def sign_in_with_oauth(manager: SessionManager = Depends(get_session_manager)):
    """
    Opens the browser and waits for the redirect (bounded by the OAuth timeout).
    """
    state = await manager.sign_in_with_oauth()
    return SessionStateResponse.from_state(state)


@router.post("/otp/send", response_model=SessionStateResponse)
async def send_otp(body: OtpSendRequest, manager: SessionManager = Depends(get_session_manager)):
    state = await manager.send_otp(body.phone)
    return SessionStateResponse.from_state(state)


@router.post("/otp/verify", response_model=SessionStateResponse)
async def verify_otp(body: OtpVerifyRequest, manager: SessionManager = Depends(get_session_manager)):
    state = await manager.sign_in_with_otp(body.phone, body.code, email=body.email)
    return SessionStateResponse.from_state(state)


@router.post("/onboarding", response_model=SessionStateResponse)
async def complete_onboarding(body: OnboardingRequest, manager: SessionManager = Depends(get_session_manager)):
    state = await manager.complete_onboarding(body.interests)
    return SessionStateResponse.from_state(state)


@router.post("/sign-out", response_model=SessionStateResponse)
async def sign_out(manager: SessionManager = Depends(get_session_manager)):
    state = await manager.sign_out()
    return SessionStateResponse.from_state(state)


@router.post("/app-state", response_model=SessionStateResponse)
async def app_state_changed(body: AppStateRequest, manager: SessionManager = Depends(get_session_manager)):
    logger.debug(f"App state reported: {body.state.value}")
    state = await manager.handle_app_state_change(body.state)
    return SessionStateResponse.from_state(state)


@router.post("/callback", response_model=SessionStateResponse)
async def handle_callback(body: CallbackRequest, manager: SessionManager = Depends(get_session_manager)):
    """
    Deep link delivered by the shell (cold start or while running).
    """
    logger.info("Deep link received from shell")
    state = await manager.handle_callback_url(body.url)
    return SessionStateResponse.from_state(state)
