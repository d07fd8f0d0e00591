"""
strive/services/browser_service.py

Purpose: External browser for the OAuth round trip

- Opens the authorize URL in the system browser
- Waits until /oauth-callback delivers the redirect, or the wait is
  cancelled/dismissed
"""

import asyncio
import webbrowser
from dataclasses import dataclass
from typing import Callable, Literal, Optional, Protocol

from strive.core.logging import get_logger

logger = get_logger(__name__)

BrowserResultType = Literal["success", "cancel", "dismiss"]


@dataclass(frozen=True)
class BrowserResult:
    type: BrowserResultType
    url: Optional[str] = None


class AuthBrowser(Protocol):
    async def open_auth_session(self, url: str, redirect_url: str) -> BrowserResult:
        ...

    def dismiss(self) -> None:
        ...


class SystemBrowser:
    """
    Opens the platform browser and parks a future until the redirect
    reaches this service. Only one round trip is pending at a time; a new
    one dismisses the previous.
    """

    def __init__(self, opener: Callable[[str], bool] = webbrowser.open):
        self._opener = opener
        self._pending: Optional[asyncio.Future] = None

    @property
    def is_waiting(self) -> bool:
        return self._pending is not None and not self._pending.done()

    async def open_auth_session(self, url: str, redirect_url: str) -> BrowserResult:
        self._resolve(BrowserResult("dismiss"))

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._pending = future

        try:
            opened = await loop.run_in_executor(None, self._opener, url)
            if not opened:
                logger.warning(f"No browser available; open this URL to continue sign in: {url}")
            logger.debug(f"Waiting for redirect to {redirect_url}")
            return await future
        finally:
            if self._pending is future:
                self._pending = None

    def _resolve(self, result: BrowserResult) -> bool:
        if not self.is_waiting:
            return False
        self._pending.set_result(result)
        return True

    def deliver_redirect(self, url: str) -> bool:
        """
        Completes a pending round trip with the redirect URL.

        Returns:
            False if nothing was waiting
        """
        return self._resolve(BrowserResult("success", url))

    def cancel(self) -> bool:
        return self._resolve(BrowserResult("cancel"))

    def dismiss(self) -> None:
        self._resolve(BrowserResult("dismiss"))
