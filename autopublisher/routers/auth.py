"""
YouTube channel connection: consent redirect, OAuth callback, status.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import HTMLResponse, RedirectResponse

from autopublisher import config
from autopublisher.core.exceptions import AuthenticationError
from autopublisher.core.oauth import consume_oauth_state, create_oauth_state
from autopublisher.core.pipeline import PipelineContext
from autopublisher.routers.deps import get_pipeline
from autopublisher.schemas import ConnectionStatusResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["YouTube Auth"])


def render_auth_page(message: Dict[str, Any]) -> str:
    """HTML that posts message to the opener window on each allowed origin, then closes."""
    # "</" inside a JSON literal would end the script element
    data = json.dumps(message).replace("</", "<\\/")
    origins = json.dumps(config.OAUTH_MESSAGE_ORIGINS).replace("</", "<\\/")
    return f"""<!DOCTYPE html>
<html>
<body>
<script>
  const authData = {data};
  if (window.opener) {{
    for (const origin of {origins}) {{
      window.opener.postMessage(authData, origin);
    }}
  }}
  window.close();
</script>
</body>
</html>"""


@router.get("/yt-channel-auth")
async def yt_channel_auth(ctx: PipelineContext = Depends(get_pipeline)) -> RedirectResponse:
    """Redirect to the Google consent screen."""
    if not ctx.oauth.is_configured():
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="OAuth not configured. Set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET.",
        )
    state = await create_oauth_state(ctx.store)
    return RedirectResponse(ctx.oauth.get_auth_url(state), status_code=status.HTTP_302_FOUND)


@router.get("/auth/callback", response_class=HTMLResponse)
async def yt_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    ctx: PipelineContext = Depends(get_pipeline),
) -> HTMLResponse:
    """Exchange the code, store tokens under the account email and notify the opener."""
    logger.info("OAuth callback received (has_code=%s)", bool(code))
    try:
        if error:
            raise AuthenticationError(f"Consent was not granted: {error}")
        if not code:
            raise AuthenticationError("Missing OAuth code")
        if not state or not await consume_oauth_state(ctx.store, state):
            raise AuthenticationError("Invalid or expired OAuth state")

        tokens = await asyncio.to_thread(ctx.oauth.get_tokens_from_code, code)
        if not tokens.get("id_token"):
            raise AuthenticationError("ID Token missing in OAuth tokens")
        email = await asyncio.to_thread(ctx.oauth.get_email_from_id_token, tokens["id_token"])
        await asyncio.to_thread(ctx.oauth.save_tokens_for_user, email, tokens)
    except Exception as e:
        logger.error("OAuth callback failed: %s", e, exc_info=True)
        return HTMLResponse(
            render_auth_page({"type": "youtube-auth-error", "error": "Authentication failed"}),
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    logger.info("YouTube OAuth completed for %s", email)
    return HTMLResponse(render_auth_page({"type": "youtube-auth-success", "email": email}))


@router.get("/yt-channel-status", response_model=ConnectionStatusResponse)
async def yt_channel_status(ctx: PipelineContext = Depends(get_pipeline)) -> ConnectionStatusResponse:
    user = await asyncio.to_thread(ctx.oauth.get_first_connected_user)
    return ConnectionStatusResponse(connected=user is not None, email=user.email if user else None)
