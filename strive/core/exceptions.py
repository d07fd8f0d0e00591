from typing import Optional, Any

class StriveError(Exception):
    """
    Base exception for the Strive session service.
    """
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500, details: Optional[Any] = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)

    @property
    def recoverable(self) -> bool:
        return False

class ConfigurationError(StriveError):
    """
    Raised when required configuration is missing or invalid. Fatal at startup.
    """
    def __init__(self, message: str = "Invalid configuration", details: Optional[Any] = None):
        super().__init__(message, code="CONFIGURATION_ERROR", status_code=500, details=details)

class ValidationError(StriveError):
    """
    Raised when input validation fails.
    """
    def __init__(self, message: str = "Validation error", details: Optional[Any] = None):
        super().__init__(message, code="VALIDATION_ERROR", status_code=422, details=details)

class StorageError(StriveError):
    """
    Raised when the local key-value store fails.
    """
    def __init__(self, message: str = "Local storage error", details: Optional[Any] = None):
        super().__init__(message, code="STORAGE_ERROR", status_code=500, details=details)

class AuthError(StriveError):
    """
    Base class for authentication failures.
    """

class RecoverableAuthError(AuthError):
    """
    Auth failure the user can retry: cancellation, provider error, bad code.
    """
    def __init__(self, message: str = "Authentication failed", code: str = "AUTHENTICATION_FAILED", status_code: int = 401, details: Optional[Any] = None):
        super().__init__(message, code=code, status_code=status_code, details=details)

    @property
    def recoverable(self) -> bool:
        return True

class AuthCancelledError(RecoverableAuthError):
    """
    Raised when the user closes the external browser flow.
    """
    def __init__(self, message: str = "Login cancelled", details: Optional[Any] = None):
        super().__init__(message, code="AUTH_CANCELLED", status_code=400, details=details)

class OAuthProviderError(RecoverableAuthError):
    """
    Raised when the identity provider or hosted service rejects the attempt.
    """
    def __init__(self, message: str = "OAuth error", details: Optional[Any] = None):
        super().__init__(message, code="OAUTH_PROVIDER_ERROR", status_code=401, details=details)

class OAuthCallbackError(RecoverableAuthError):
    """
    Raised when the OAuth redirect carries neither tokens nor a code.
    """
    def __init__(self, message: str = "OAuth callback carried no credentials", details: Optional[Any] = None):
        super().__init__(message, code="OAUTH_CALLBACK_INVALID", status_code=400, details=details)

class OAuthTimeoutError(RecoverableAuthError):
    """
    Raised when the browser round trip does not finish in time.
    """
    def __init__(self, message: str = "Login timed out", details: Optional[Any] = None):
        super().__init__(message, code="OAUTH_TIMEOUT", status_code=408, details=details)

class InvalidOtpError(RecoverableAuthError):
    """
    Raised when a one-time code is rejected.
    """
    def __init__(self, message: str = "Invalid OTP. Please try again.", details: Optional[Any] = None):
        super().__init__(message, code="INVALID_OTP", status_code=401, details=details)

class TransientAuthError(AuthError):
    """
    Raised when the hosted service is unreachable or failing (network, 5xx).
    """
    def __init__(self, message: str = "External service error", details: Optional[Any] = None):
        super().__init__(message, code="EXTERNAL_SERVICE_ERROR", status_code=502, details=details)

    @property
    def recoverable(self) -> bool:
        return True

class ExternalServiceError(StriveError):
    """
    Raised when a hosted data endpoint (e.g. the profile table) rejects a request.
    """
    def __init__(self, message: str = "External service error", details: Optional[Any] = None):
        super().__init__(message, code="EXTERNAL_SERVICE_ERROR", status_code=502, details=details)

    @property
    def recoverable(self) -> bool:
        return True
