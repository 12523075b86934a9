import json
import time
import urllib.parse
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx

from spotify_agent import RetryPolicy, SpotifyClient, TokenInfo

NO_WAIT = RetryPolicy(base_delay=0, max_delay=0)

Reply = Union[Tuple[int, Any], Tuple[int, Any, Dict[str, str]], Callable[[httpx.Request], httpx.Response]]


def valid_token(*, expires_in: float = 3600, refresh_token: Optional[str] = "R") -> TokenInfo:
    return TokenInfo(
        access_token="A",
        refresh_token=refresh_token,
        expires_at=time.time() + expires_in,
        scope="user-library-read",
    )


def form_of(request: httpx.Request) -> Dict[str, str]:
    return {k: v[0] for k, v in urllib.parse.parse_qs(request.content.decode("utf-8")).items()}


def json_of(request: httpx.Request) -> Any:
    return json.loads(request.content.decode("utf-8"))


def refuse_connection(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("[Errno 111] Connection refused", request=request)


class FakeSpotify:
    """Canned replies keyed by (method, url path); records every request.

    Replies queued for a route are used in order; the last one repeats.
    A reply is (status, json[, headers]) or a callable taking the request.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], List[Reply]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, path: str, *replies: Reply) -> "FakeSpotify":
        self.routes.setdefault((method.upper(), path), []).extend(replies)
        return self

    def add_token_reply(self, *replies: Reply) -> "FakeSpotify":
        return self.add("POST", "/api/token", *replies)

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"error": {"status": 404, "message": "Not found"}})

        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(reply):
            return reply(request)
        status, body = reply[0], reply[1]
        headers = reply[2] if len(reply) > 2 else None
        if body is None:
            return httpx.Response(status, headers=headers)
        return httpx.Response(status, json=body, headers=headers)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def client(self, *, token: Optional[TokenInfo] = None, retry_policy: RetryPolicy = NO_WAIT) -> SpotifyClient:
        client = SpotifyClient(
            "client-id",
            "client-secret",
            "http://127.0.0.1:8888/callback",
            retry_policy=retry_policy,
            transport=self.transport(),
        )
        if token is not None:
            client.set_tokens(token)
        return client
