"""
Google OAuth for the connected YouTube account.

Tokens are stored per normalized email. Access tokens are refreshed lazily:
AuthenticatedClient.ensure_fresh() runs right before each YouTube call and
persists the rotated tokens through the refresh callback.
"""

import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import id_token as google_id_token
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from autopublisher import config
from autopublisher.core.exceptions import AuthenticationError
from autopublisher.core.repositories import ConnectedUser, TokenRepository, get_token_repository
from autopublisher.core.state import TraceStore, oauth_state_scope
from autopublisher.core.utils import normalize_email, utc_now_iso

logger = logging.getLogger(__name__)

AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"

SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/youtube.upload",
    "https://www.googleapis.com/auth/youtube",
    "https://www.googleapis.com/auth/youtube.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]

OAUTH_STATE_TTL_SECONDS = 600

RefreshCallback = Callable[[str, Dict[str, Any]], None]


def credentials_to_tokens(credentials: Credentials) -> Dict[str, Any]:
    """Serialize google-auth credentials to the stored token dict."""
    tokens: Dict[str, Any] = {
        "access_token": credentials.token,
        "token_type": "Bearer",
    }
    if credentials.refresh_token:
        tokens["refresh_token"] = credentials.refresh_token
    if credentials.id_token:
        tokens["id_token"] = credentials.id_token
    if credentials.scopes:
        tokens["scope"] = " ".join(credentials.scopes)
    if credentials.expiry:
        # google-auth keeps expiry as naive UTC
        tokens["expiry"] = credentials.expiry.isoformat()
    return tokens


class AuthenticatedClient:
    """Credentials of one connected account, refreshed on demand."""

    def __init__(
        self,
        email: str,
        tokens: Dict[str, Any],
        credentials: Credentials,
        on_refresh: Optional[RefreshCallback] = None,
    ):
        self.email = email
        self.tokens = dict(tokens)
        self.credentials = credentials
        self.on_refresh = on_refresh

    def ensure_fresh(self) -> Credentials:
        """
        Refresh the access token if it is missing or expired.

        Raises:
            AuthenticationError: If the token is expired and cannot be refreshed
        """
        if self.credentials.valid:
            return self.credentials
        if not self.credentials.refresh_token:
            raise AuthenticationError("YouTube authentication expired. Please reconnect your account.")

        logger.info("Refreshing tokens for: %s", self.email)
        try:
            self.credentials.refresh(GoogleAuthRequest())
        except Exception as e:
            raise AuthenticationError(f"Failed to refresh YouTube token: {e}") from e

        self.tokens = {**self.tokens, **credentials_to_tokens(self.credentials)}
        if self.on_refresh is not None:
            self.on_refresh(self.email, self.tokens)
        return self.credentials


class OAuthManager:
    def __init__(
        self,
        repository: Optional[TokenRepository] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
    ):
        self.repository = repository or get_token_repository()
        self.client_id = client_id if client_id is not None else config.GOOGLE_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else config.GOOGLE_CLIENT_SECRET
        self.redirect_uri = redirect_uri or config.GOOGLE_REDIRECT_URI

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _require_configured(self) -> None:
        if not self.is_configured():
            raise AuthenticationError(
                "OAuth not configured. Please set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET environment variables."
            )

    def _flow(self) -> Flow:
        self._require_configured()
        client_config = {
            "web": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": AUTH_URI,
                "token_uri": TOKEN_URI,
                "redirect_uris": [self.redirect_uri],
            }
        }
        return Flow.from_client_config(
            client_config,
            scopes=SCOPES,
            redirect_uri=self.redirect_uri,
            autogenerate_code_verifier=False,
        )

    def get_auth_url(self, state: Optional[str] = None) -> str:
        kwargs: Dict[str, Any] = {"access_type": "offline", "prompt": "consent"}
        if state:
            kwargs["state"] = state
        url, _ = self._flow().authorization_url(**kwargs)
        return url

    def get_tokens_from_code(self, code: str) -> Dict[str, Any]:
        flow = self._flow()
        flow.fetch_token(code=code)
        return credentials_to_tokens(flow.credentials)

    def get_email_from_id_token(self, token: str) -> str:
        claims = google_id_token.verify_oauth2_token(token, GoogleAuthRequest(), audience=self.client_id)
        email = claims.get("email")
        if not email:
            raise AuthenticationError("Email not found in ID token")
        return email

    def save_tokens_for_user(self, email: str, tokens: Dict[str, Any]) -> ConnectedUser:
        return self.repository.save(normalize_email(email), tokens)

    def load_tokens_for_user(self, email: str) -> Optional[Dict[str, Any]]:
        user = self.repository.load(email)
        return user.tokens if user else None

    def delete_tokens_for_user(self, email: str) -> None:
        self.repository.delete(email)

    def get_first_connected_user(self) -> Optional[ConnectedUser]:
        """Most recently updated account; every pipeline run publishes to it."""
        return self.repository.most_recent()

    def is_any_user_connected(self) -> bool:
        return self.repository.count() > 0

    def _credentials(self, tokens: Dict[str, Any]) -> Credentials:
        credentials = Credentials(
            token=tokens.get("access_token"),
            refresh_token=tokens.get("refresh_token"),
            id_token=tokens.get("id_token"),
            token_uri=TOKEN_URI,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=(tokens.get("scope") or "").split() or None,
        )
        expiry = tokens.get("expiry")
        if expiry:
            parsed = datetime.fromisoformat(expiry)
            if parsed.tzinfo is not None:
                parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
            credentials.expiry = parsed
        return credentials

    def get_authenticated_client(self, email: str) -> AuthenticatedClient:
        """
        Raises:
            AuthenticationError: If no tokens are stored for email
        """
        tokens = self.load_tokens_for_user(email)
        if not tokens:
            raise AuthenticationError("User not authenticated")
        return AuthenticatedClient(
            email=normalize_email(email),
            tokens=tokens,
            credentials=self._credentials(tokens),
            on_refresh=self.save_tokens_for_user,
        )


async def create_oauth_state(store: TraceStore) -> str:
    """Issue a one-time CSRF state for the consent redirect."""
    state = secrets.token_urlsafe(24)
    await store.set(oauth_state_scope(state), "createdAt", utc_now_iso())
    return state


async def consume_oauth_state(store: TraceStore, state: str) -> bool:
    """True if state was issued, unexpired and not used before."""
    scope = oauth_state_scope(state)

    def _claim(snapshot: Dict[str, Any]) -> Dict[str, Any]:
        if not snapshot.get("createdAt") or snapshot.get("consumed"):
            return {}
        return {"consumed": True}

    written = await store.transact(scope, _claim)
    if not written:
        return False
    created_at = datetime.fromisoformat(await store.get(scope, "createdAt"))
    await store.delete_scope(scope)
    age = (datetime.now(timezone.utc) - created_at).total_seconds()
    return age <= OAUTH_STATE_TTL_SECONDS
