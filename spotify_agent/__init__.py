"""Spotify Web API session + catalog access (OAuth authorization code flow).

Consumers:
- menus/spotify_menu.py (interactive login + playlist creation)
- playlist scoring, via SpotifyDataLoader
"""

from .auth import SessionState, SpotifyAuth, extract_code_from_redirect_url
from .client import SpotifyClient
from .data_loader import SpotifyDataLoader
from .errors import (
    AuthenticationError,
    FailureKind,
    NetworkError,
    RateLimitError,
    SpotifyAPIError,
    SpotifyError,
)
from .models import CreatePlaylistRequest
from .retry import Outcome, RetryPolicy, retry_outcome, retry_with_backoff
from .token_manager import TokenInfo, TokenManager
from .transport import AuthenticatedTransport

__all__ = [
    "AuthenticatedTransport",
    "AuthenticationError",
    "CreatePlaylistRequest",
    "FailureKind",
    "NetworkError",
    "Outcome",
    "RateLimitError",
    "RetryPolicy",
    "SessionState",
    "SpotifyAPIError",
    "SpotifyAuth",
    "SpotifyClient",
    "SpotifyDataLoader",
    "SpotifyError",
    "TokenInfo",
    "TokenManager",
    "extract_code_from_redirect_url",
    "retry_outcome",
    "retry_with_backoff",
]
