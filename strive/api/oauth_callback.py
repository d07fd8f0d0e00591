"""
strive/api/oauth_callback.py

Purpose: Landing page for the OAuth redirect

When the provider redirects back here:
1. Hands the full URL to a pending browser wait, if there is one
2. Otherwise treats it as a deep link and completes sign-in directly
3. Shows a short "completing sign in" page
"""

from html import escape
from typing import Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import HTMLResponse

from strive.core.logging import get_logger
from utils.constants import COMPLETING_SIGN_IN_MESSAGE

logger = get_logger(__name__)
router = APIRouter()


def _render(message: str) -> str:
    return f"""
    <!DOCTYPE html>
    <html lang="en">
    <head>
        <meta charset="UTF-8">
        <meta name="viewport" content="width=device-width, initial-scale=1.0">
        <title>Strive</title>
        <style>
            body {{
                font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
                display: flex;
                justify-content: center;
                align-items: center;
                min-height: 100vh;
                margin: 0;
                background: #f5f7fb;
                color: #1f2937;
            }}
        </style>
        <script>
            // Implicit-flow tokens arrive in the fragment, which never reaches the server
            if (window.location.hash && !window.location.search.includes("url=")) {{
                window.location.replace(
                    window.location.pathname + "?url=" + encodeURIComponent(window.location.href)
                );
            }}
        </script>
    </head>
    <body>
        <p>{escape(message)}</p>
    </body>
    </html>
    """


@router.get("/oauth-callback", response_class=HTMLResponse)
async def oauth_callback(
    request: Request,
    url: Optional[str] = Query(None, description="Forwarded redirect URL (fragment flows)")
):
    """
    Receives the provider redirect.

    Query params:
        url: Full redirect URL, forwarded by the page script when the
             tokens were in the fragment. Otherwise the request URL is used.
    """
    redirect_url = url or str(request.url)
    has_fragment_pending = url is None and not request.url.query

    if has_fragment_pending:
        # Nothing server-visible yet; the page script forwards the fragment
        return HTMLResponse(_render(COMPLETING_SIGN_IN_MESSAGE))

    browser = request.app.state.browser
    if browser.deliver_redirect(redirect_url):
        logger.info("OAuth redirect delivered to pending browser session")
    else:
        logger.info("OAuth redirect received with no pending browser session, handling as deep link")
        await request.app.state.session_manager.handle_callback_url(redirect_url)

    return HTMLResponse(_render(COMPLETING_SIGN_IN_MESSAGE))
