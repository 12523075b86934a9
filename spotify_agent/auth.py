import logging
import urllib.parse
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from .errors import AuthenticationError, SpotifyError, classify_response, classify_transport_error, response_body, token_endpoint_message
from .token_manager import TokenInfo, TokenManager
from .transport import DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)

SPOTIFY_ACCOUNTS_BASE_URL = "https://accounts.spotify.com"
SPOTIFY_AUTHORIZE_URL = f"{SPOTIFY_ACCOUNTS_BASE_URL}/authorize"
SPOTIFY_TOKEN_URL = f"{SPOTIFY_ACCOUNTS_BASE_URL}/api/token"

SPOTIFY_SCOPES = (
    "user-library-read",
    "playlist-modify-public",
    "playlist-modify-private",
)

# Refresh when the access token expires within this many seconds.
REFRESH_HORIZON_SECONDS = 5 * 60


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"


def extract_code_from_redirect_url(redirect_url: str) -> Dict[str, str]:
    """Parse a redirect URL and return {"code": ..., "state": ...} (missing keys omitted)."""

    parsed = urllib.parse.urlparse(str(redirect_url or "").strip())
    qs = urllib.parse.parse_qs(parsed.query)
    out: Dict[str, str] = {}
    if qs.get("code"):
        out["code"] = str(qs["code"][0])
    if qs.get("state"):
        out["state"] = str(qs["state"][0])
    if qs.get("error"):
        out["error"] = str(qs["error"][0])
    return out


class SpotifyAuth:
    """Spotify OAuth (Authorization Code with client secret) session manager.

    The only component that writes to the TokenManager. States:

        UNAUTHENTICATED --exchange_code--> AUTHENTICATED
        AUTHENTICATED --refresh--> REFRESHING --> AUTHENTICATED
        any --clear_tokens--> UNAUTHENTICATED

    A failed refresh leaves the session where it was; the caller decides
    whether to clear it.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        *,
        token_manager: Optional[TokenManager] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.token_manager = token_manager or TokenManager()
        self._client = httpx.AsyncClient(timeout=timeout, follow_redirects=False, transport=transport)
        self._refreshing = False

    @property
    def state(self) -> SessionState:
        if self._refreshing:
            return SessionState.REFRESHING
        if self.token_manager.is_authenticated():
            return SessionState.AUTHENTICATED
        return SessionState.UNAUTHENTICATED

    def build_authorization_url(self, state: Optional[str] = None) -> str:
        params: Dict[str, str] = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(SPOTIFY_SCOPES),
        }
        if state:
            params["state"] = str(state)

        return f"{SPOTIFY_AUTHORIZE_URL}?{urllib.parse.urlencode(params)}"

    async def exchange_code(self, code: str) -> TokenInfo:
        """Trade an authorization code for the first credential snapshot."""

        try:
            payload = await self._post_form(
                {
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self.redirect_uri,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                }
            )
        except (SpotifyError, httpx.HTTPError) as e:
            logger.error("Spotify token exchange failed: %s", e)
            raise AuthenticationError(token_endpoint_message(e, "Token exchange failed")) from e

        token = TokenInfo.from_spotify_token_response(payload)
        if not token.access_token:
            raise AuthenticationError("Token exchange failed")

        self.token_manager.write(token)
        logger.info("Spotify session authenticated (scope: %s)", token.scope or "-")
        return token

    async def refresh(self) -> str:
        """Swap the access token for a fresh one and return it."""

        current = self.token_manager.read()
        if current is None or not current.refresh_token:
            raise AuthenticationError("No refresh token available")

        self._refreshing = True
        try:
            payload = await self._post_form(
                {
                    "grant_type": "refresh_token",
                    "refresh_token": current.refresh_token,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                }
            )
        except (SpotifyError, httpx.HTTPError) as e:
            logger.error("Spotify token refresh failed: %s", e)
            raise AuthenticationError(token_endpoint_message(e, "Token refresh failed")) from e
        finally:
            self._refreshing = False

        if not payload.get("access_token"):
            raise AuthenticationError("Token refresh failed")

        refreshed = current.with_refreshed_access(payload)
        self.token_manager.write(refreshed)
        logger.info("Spotify access token refreshed")
        return refreshed.access_token

    async def ensure_valid(self) -> None:
        """Pre-flight check run before every authenticated API call."""

        if not self.token_manager.is_authenticated():
            raise AuthenticationError("Not authenticated")

        if self.token_manager.expires_within(REFRESH_HORIZON_SECONDS):
            logger.debug("Access token expires within %ds, refreshing", REFRESH_HORIZON_SECONDS)
            await self.refresh()

    def set_tokens(self, token: Optional[TokenInfo]) -> None:
        self.token_manager.write(token)

    def clear_tokens(self) -> None:
        self.token_manager.write(None)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post_form(self, form: Dict[str, Any]) -> Dict[str, Any]:
        data = {k: str(v) for k, v in (form or {}).items() if v is not None}

        try:
            resp = await self._client.post(
                SPOTIFY_TOKEN_URL,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.RequestError as e:
            classified = classify_transport_error(e)
            if classified is None:
                raise
            raise classified from e

        if not resp.is_success:
            raise classify_response(resp)

        payload = response_body(resp)
        if not isinstance(payload, dict):
            raise AuthenticationError(f"Spotify token response was not an object: {payload}")

        return payload
