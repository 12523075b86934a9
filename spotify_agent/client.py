import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, TypeVar, Union

import httpx

from .auth import SpotifyAuth
from .models import CreatePlaylistRequest
from .retry import DEFAULT_RETRY_POLICY, RetryPolicy, retry_with_backoff
from .token_manager import TokenInfo, TokenManager
from .transport import DEFAULT_TIMEOUT, SPOTIFY_API_BASE_URL, AuthenticatedTransport

logger = logging.getLogger(__name__)

T = TypeVar("T")

LIKED_SONGS_FIRST_PAGE = "/me/tracks?limit=50"

# Web API per-request limits.
TRACK_DETAILS_BATCH_SIZE = 50
PLAYLIST_ADD_BATCH_SIZE = 100


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    if size <= 0:
        raise ValueError("chunk size must be positive")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def cursor_to_path(next_url: Optional[str]) -> Optional[str]:
    """Strip the API origin from a `next` cursor so it can be fed back to the transport."""
    if not next_url:
        return None
    if next_url.startswith(SPOTIFY_API_BASE_URL):
        return next_url[len(SPOTIFY_API_BASE_URL):] or "/"
    return next_url


class SpotifyClient:
    """Spotify Web API client for a single user session.

    Every public catalog call:
    - runs the session pre-flight check (refreshing a token close to expiry)
    - sends each page/chunk through retry_with_backoff()
    - surfaces failures as typed SpotifyError subclasses, unchanged

    Pages and chunks are fetched strictly in order, one at a time.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        *,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        token_manager: Optional[TokenManager] = None,
    ):
        self.token_manager = token_manager or TokenManager()
        self.retry_policy = retry_policy
        self.auth = SpotifyAuth(
            client_id,
            client_secret,
            redirect_uri,
            token_manager=self.token_manager,
            timeout=timeout,
            transport=transport,
        )
        self.http = AuthenticatedTransport(self.token_manager, timeout=timeout, transport=transport)

    @classmethod
    def from_config(cls, config: Dict[str, Any], **kwargs: Any) -> "SpotifyClient":
        return cls(
            config["spotify_client_id"],
            config["spotify_client_secret"],
            config["spotify_redirect_uri"],
            retry_policy=RetryPolicy.from_config(config),
            timeout=float(config.get("spotify_timeout", DEFAULT_TIMEOUT)),
            **kwargs,
        )

    async def __aenter__(self) -> "SpotifyClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.http.aclose()
        await self.auth.aclose()

    # -----------------
    # Session
    # -----------------

    def is_authenticated(self) -> bool:
        return self.token_manager.is_authenticated()

    def get_tokens(self) -> Optional[TokenInfo]:
        return self.token_manager.read()

    def set_tokens(self, token: Optional[TokenInfo]) -> None:
        self.auth.set_tokens(token)

    def clear_tokens(self) -> None:
        self.auth.clear_tokens()

    def generate_auth_url(self, state: Optional[str] = None) -> str:
        return self.auth.build_authorization_url(state)

    async def exchange_code_for_token(self, code: str) -> TokenInfo:
        return await self.auth.exchange_code(code)

    async def _retried(self, call: Callable[[], Awaitable[T]]) -> T:
        first = True

        async def operation() -> T:
            nonlocal first
            # A retry may land after the token crossed the refresh horizon.
            if not first:
                await self.auth.ensure_valid()
            first = False
            return await call()

        return await retry_with_backoff(operation, self.retry_policy)

    # -----------------
    # Catalog operations
    # -----------------

    async def get_liked_songs(self) -> List[Dict[str, Any]]:
        """Fetch every saved track, following `next` cursors until exhausted."""

        await self.auth.ensure_valid()

        songs: List[Dict[str, Any]] = []
        next_path: Optional[str] = LIKED_SONGS_FIRST_PAGE
        pages = 0

        while next_path:
            path = next_path
            page = await self._retried(lambda: self.http.request_json("GET", path))
            pages += 1

            for item in page.get("items") or []:
                if not isinstance(item, dict) or not isinstance(item.get("track"), dict):
                    continue
                track = dict(item["track"])
                if item.get("added_at"):
                    track["added_at"] = item["added_at"]
                songs.append(track)

            next_path = cursor_to_path(page.get("next"))

        logger.info("Fetched %d liked songs in %d page(s)", len(songs), pages)
        return songs

    async def get_track_details(self, track_ids: Sequence[str]) -> List[Dict[str, Any]]:
        await self.auth.ensure_valid()

        tracks: List[Dict[str, Any]] = []
        for batch in chunked(list(track_ids), TRACK_DETAILS_BATCH_SIZE):
            ids = ",".join(batch)
            payload = await self._retried(lambda: self.http.request_json("GET", "/tracks", params={"ids": ids}))
            tracks.extend(payload.get("tracks") or [])

        return tracks

    async def create_playlist(
        self, request: Union[CreatePlaylistRequest, Mapping[str, Any]]
    ) -> Dict[str, Any]:
        await self.auth.ensure_valid()
        body = CreatePlaylistRequest.coerce(request).to_payload()

        me = await self.http.request_json("GET", "/me")
        user_id = me["id"]

        playlist = await self._retried(
            lambda: self.http.request_json("POST", f"/users/{user_id}/playlists", json=body)
        )
        logger.info("Created playlist %r (%s)", body["name"], playlist.get("id"))
        return playlist

    async def add_tracks_to_playlist(self, playlist_id: str, track_uris: Sequence[str]) -> None:
        """Append URIs in batches of 100. The first failing batch stops the rest.

        Batches already applied stay applied.
        """

        await self.auth.ensure_valid()

        batches = chunked(list(track_uris), PLAYLIST_ADD_BATCH_SIZE)
        for index, batch in enumerate(batches):
            await self._retried(
                lambda: self.http.request("POST", f"/playlists/{playlist_id}/tracks", json={"uris": batch})
            )
            logger.debug("Added batch %d/%d (%d tracks) to %s", index + 1, len(batches), len(batch), playlist_id)
