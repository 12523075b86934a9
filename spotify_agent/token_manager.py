import time
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional


TOKEN_TYPE_BEARER = "Bearer"


@dataclass(frozen=True)
class TokenInfo:
    """Credential snapshot held by TokenManager.

    Instances are immutable; a refresh produces a new snapshot which replaces
    the old one in a single assignment.
    """

    access_token: str
    refresh_token: Optional[str]
    expires_at: float
    scope: str = ""
    token_type: str = TOKEN_TYPE_BEARER

    @staticmethod
    def from_spotify_token_response(payload: Dict[str, Any], *, now: Optional[float] = None) -> "TokenInfo":
        """Convert Spotify token response JSON into TokenInfo.

        Spotify returns:
        - access_token
        - token_type
        - expires_in (seconds)
        - refresh_token (omitted on most refreshes)
        - scope (space-delimited string)
        """

        now_ts = float(time.time() if now is None else now)
        expires_in = float(payload.get("expires_in", 0) or 0)

        return TokenInfo(
            access_token=str(payload.get("access_token", "")),
            refresh_token=payload.get("refresh_token") or None,
            expires_at=now_ts + expires_in,
            scope=str(payload.get("scope") or ""),
            token_type=TOKEN_TYPE_BEARER,
        )

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "TokenInfo":
        """Rebuild a snapshot previously produced by to_dict()."""

        return TokenInfo(
            access_token=str(data.get("access_token", "")),
            refresh_token=data.get("refresh_token") or None,
            expires_at=float(data.get("expires_at", 0)),
            scope=str(data.get("scope") or ""),
            token_type=TOKEN_TYPE_BEARER,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "scope": self.scope,
            "expires_at": self.expires_at,
            "expires_in": max(0, int(self.expires_at - time.time())),
        }

    def with_refreshed_access(self, payload: Dict[str, Any], *, now: Optional[float] = None) -> "TokenInfo":
        """Return a copy carrying the access token and expiry from a refresh response.

        The refresh token is only replaced when the server rotates it.
        """

        fresh = TokenInfo.from_spotify_token_response(payload, now=now)
        return replace(
            self,
            access_token=fresh.access_token,
            expires_at=fresh.expires_at,
            refresh_token=fresh.refresh_token or self.refresh_token,
            scope=fresh.scope or self.scope,
        )


class TokenManager:
    """In-memory holder for the current credential snapshot.

    Single writer (SpotifyAuth), many readers (transport, pre-flight checks).
    Nothing is written to disk; persistence belongs to whoever calls
    get_tokens()/set_tokens() on the client.
    """

    def __init__(self, token: Optional[TokenInfo] = None):
        self._token = token

    def read(self) -> Optional[TokenInfo]:
        return self._token

    def write(self, token: Optional[TokenInfo]) -> None:
        self._token = token

    def is_authenticated(self) -> bool:
        return self._token is not None

    def expires_within(self, seconds: float, *, now: Optional[float] = None) -> bool:
        """True when the snapshot expires at or before now + seconds."""
        if self._token is None:
            return False
        now_ts = float(time.time() if now is None else now)
        return float(self._token.expires_at) <= now_ts + float(seconds)
