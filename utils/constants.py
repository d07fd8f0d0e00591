"""
utils/constants.py

Purpose: Centralized static content

- Local storage marker keys shared by the OTP login path and sign-out
- User-facing messages
- Validation limits

(Prevents hardcoding across the codebase)
"""

# ============================================================
# LOCAL STORAGE MARKERS
# ============================================================

IS_LOGGED_IN_KEY = "isLoggedIn"
HAS_COMPLETED_ONBOARDING_KEY = "hasCompletedOnboarding"
USER_MOBILE_KEY = "userMobile"
USER_EMAIL_KEY = "userEmail"
USER_INTERESTS_KEY = "userInterests"

# Profile cache written by the profile service
USER_PROFILE_KEY = "userProfile"
USER_ID_KEY = "userId"

MARKER_TRUE = "true"

# Markers the OTP probe reads
OTP_PROBE_KEYS = [
    IS_LOGGED_IN_KEY,
    HAS_COMPLETED_ONBOARDING_KEY,
    USER_MOBILE_KEY,
]

# Everything sign-out must delete. The login marker goes first.
SESSION_MARKER_KEYS = [
    IS_LOGGED_IN_KEY,
    HAS_COMPLETED_ONBOARDING_KEY,
    USER_MOBILE_KEY,
    USER_EMAIL_KEY,
    USER_INTERESTS_KEY,
    USER_PROFILE_KEY,
    USER_ID_KEY,
]

# ============================================================
# VALIDATION LIMITS
# ============================================================

MOBILE_LENGTH = 10
OTP_LENGTH = 6
MAX_INTERESTS = 3

# ============================================================
# MESSAGES
# ============================================================

LOGIN_CANCELLED_MESSAGE = "Login cancelled"
LOGIN_TIMEOUT_MESSAGE = "Login timed out. Please try again."
INVALID_MOBILE_MESSAGE = f"Please enter a valid {MOBILE_LENGTH}-digit mobile number"
INCOMPLETE_OTP_MESSAGE = "Please enter complete OTP"
INVALID_OTP_MESSAGE = "Invalid OTP. Please try again."
NO_INTERESTS_MESSAGE = "Please select at least one interest"
COMPLETING_SIGN_IN_MESSAGE = "Completing sign in..."
