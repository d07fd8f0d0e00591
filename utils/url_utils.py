"""
utils/url_utils.py

Purpose: OAuth redirect URL parsing

- Token shape: #access_token=...&refresh_token=...
- Code shape: ?code=...
- Error shape: ?error=... (or in the fragment)
- PKCE verifier/challenge helpers
"""

import base64
import hashlib
import secrets
from dataclasses import dataclass
from typing import Dict, Optional
from urllib.parse import parse_qs, urlsplit


@dataclass(frozen=True)
class AuthCallback:
    """
    Credentials (or failure) carried by an OAuth redirect.
    """
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    code: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None

    @property
    def has_tokens(self) -> bool:
        return bool(self.access_token and self.refresh_token)

    @property
    def has_code(self) -> bool:
        return bool(self.code)

    @property
    def is_error(self) -> bool:
        return bool(self.error)

    @property
    def is_auth_callback(self) -> bool:
        """False for deep links unrelated to sign-in."""
        return self.is_error or self.has_tokens or self.has_code


def _first_values(query: str) -> Dict[str, str]:
    return {key: values[0] for key, values in parse_qs(query, keep_blank_values=False).items()}


def parse_auth_callback(url: str) -> AuthCallback:
    """
    Extracts tokens, code or error from a redirect URL.

    Errors are looked up in both the query and the fragment since the hosted
    service reports implicit-flow errors in the fragment.

    Args:
        url: Full redirect URL (custom scheme or http)

    Returns:
        AuthCallback with whatever the URL carried
    """
    parts = urlsplit(url or "")
    query = _first_values(parts.query)
    fragment = _first_values(parts.fragment)

    error = query.get("error") or fragment.get("error")
    error_description = query.get("error_description") or fragment.get("error_description")

    return AuthCallback(
        access_token=fragment.get("access_token"),
        refresh_token=fragment.get("refresh_token"),
        code=query.get("code"),
        error=error,
        error_description=error_description,
    )


def generate_code_verifier(length: int = 64) -> str:
    """
    Random PKCE code verifier (RFC 7636, 43-128 unreserved characters).
    """
    return secrets.token_urlsafe(length)[:128]


def code_challenge_s256(verifier: str) -> str:
    """
    S256 code challenge for a verifier.
    """
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
