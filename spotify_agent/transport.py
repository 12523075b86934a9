import logging
from typing import Any, Dict, Optional

import httpx

from .errors import classify_response, classify_transport_error, response_body
from .token_manager import TokenManager

logger = logging.getLogger(__name__)

SPOTIFY_API_BASE_URL = "https://api.spotify.com/v1"
DEFAULT_TIMEOUT = 10.0


class AuthenticatedTransport:
    """Async HTTP wrapper for the Web API.

    Injects the current bearer token on every request and turns every
    failure into a typed SpotifyError, so callers only ever see a successful
    response or a classified exception.
    """

    def __init__(
        self,
        token_manager: TokenManager,
        *,
        base_url: str = SPOTIFY_API_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token_manager = token_manager
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=False,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self) -> "AuthenticatedTransport":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _auth_headers(self) -> Dict[str, str]:
        token = self.token_manager.read()
        if token is None:
            return {}
        return {"Authorization": f"{token.token_type} {token.access_token}"}

    def url_for(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> httpx.Response:
        url = self.url_for(path)
        try:
            resp = await self._client.request(
                method.upper(),
                url,
                params=params,
                json=json,
                headers=self._auth_headers(),
            )
        except httpx.RequestError as e:
            classified = classify_transport_error(e)
            if classified is None:
                raise
            logger.debug("%s %s failed before a response: %s", method.upper(), url, e)
            raise classified from e

        if resp.is_success:
            return resp

        error = classify_response(resp)
        logger.debug("%s %s -> HTTP %d (%s)", method.upper(), url, resp.status_code, error.kind.value)
        raise error

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> Any:
        resp = await self.request(method, path, params=params, json=json)
        body = response_body(resp)
        return {} if body is None else body
