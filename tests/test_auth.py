import time
import unittest
import urllib.parse

import httpx

from spotify_agent.auth import SessionState, SpotifyAuth, extract_code_from_redirect_url
from spotify_agent.errors import AuthenticationError
from spotify_agent.token_manager import TokenInfo, TokenManager
from tests.helpers import FakeSpotify, form_of, refuse_connection, valid_token

TOKEN_RESPONSE = {
    "access_token": "A",
    "refresh_token": "R",
    "expires_in": 3600,
    "token_type": "Bearer",
    "scope": "x",
}


def make_auth(test: unittest.IsolatedAsyncioTestCase, fake: FakeSpotify, token=None) -> SpotifyAuth:
    auth = SpotifyAuth(
        "client-id",
        "client-secret",
        "http://127.0.0.1:8888/callback",
        token_manager=TokenManager(token),
        transport=fake.transport(),
    )
    test.addAsyncCleanup(auth.aclose)
    return auth


def corrupt_gzip(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, content=b"not-gzip", headers={"Content-Encoding": "gzip"})


class TestAuthorizationUrl(unittest.IsolatedAsyncioTestCase):
    def test_url_carries_client_redirect_scopes_and_state(self):
        auth = make_auth(self, FakeSpotify())
        url = auth.build_authorization_url("xyz")
        parsed = urllib.parse.urlparse(url)
        qs = urllib.parse.parse_qs(parsed.query)

        self.assertEqual(f"{parsed.scheme}://{parsed.netloc}{parsed.path}", "https://accounts.spotify.com/authorize")
        self.assertEqual(qs["client_id"], ["client-id"])
        self.assertEqual(qs["response_type"], ["code"])
        self.assertEqual(qs["redirect_uri"], ["http://127.0.0.1:8888/callback"])
        self.assertEqual(qs["scope"], ["user-library-read playlist-modify-public playlist-modify-private"])
        self.assertEqual(qs["state"], ["xyz"])

    def test_url_is_deterministic_and_state_optional(self):
        auth = make_auth(self, FakeSpotify())
        self.assertEqual(auth.build_authorization_url(), auth.build_authorization_url())
        self.assertNotIn("state=", auth.build_authorization_url())
        self.assertIs(auth.state, SessionState.UNAUTHENTICATED)

    def test_extract_code_from_redirect_url(self):
        parsed = extract_code_from_redirect_url("http://127.0.0.1:8888/callback?code=AAA&state=BBB")
        self.assertEqual(parsed, {"code": "AAA", "state": "BBB"})
        self.assertEqual(extract_code_from_redirect_url("http://x/cb?error=access_denied"), {"error": "access_denied"})


class TestExchangeCode(unittest.IsolatedAsyncioTestCase):
    async def test_exchange_stores_snapshot_with_absolute_expiry(self):
        fake = FakeSpotify().add_token_reply((200, TOKEN_RESPONSE))
        auth = make_auth(self, fake)

        before = time.time()
        token = await auth.exchange_code("AUTH_CODE")

        self.assertTrue(auth.token_manager.is_authenticated())
        self.assertIs(auth.state, SessionState.AUTHENTICATED)
        self.assertIs(auth.token_manager.read(), token)
        self.assertEqual((token.access_token, token.refresh_token, token.token_type, token.scope), ("A", "R", "Bearer", "x"))
        self.assertAlmostEqual(token.expires_at, before + 3600, delta=1.0)

        form = form_of(fake.requests[0])
        self.assertEqual(form["grant_type"], "authorization_code")
        self.assertEqual(form["code"], "AUTH_CODE")
        self.assertEqual(form["redirect_uri"], "http://127.0.0.1:8888/callback")
        self.assertEqual(form["client_id"], "client-id")
        self.assertEqual(form["client_secret"], "client-secret")
        self.assertEqual(fake.requests[0].headers["Content-Type"], "application/x-www-form-urlencoded")

    async def test_exchange_failure_uses_server_description(self):
        fake = FakeSpotify().add_token_reply(
            (400, {"error": "invalid_grant", "error_description": "Invalid authorization code"})
        )
        auth = make_auth(self, fake)

        with self.assertRaises(AuthenticationError) as ctx:
            await auth.exchange_code("BAD")

        self.assertEqual(str(ctx.exception), "Invalid authorization code")
        self.assertFalse(auth.token_manager.is_authenticated())

    async def test_exchange_network_failure(self):
        auth = make_auth(self, FakeSpotify().add_token_reply(refuse_connection))
        with self.assertRaises(AuthenticationError) as ctx:
            await auth.exchange_code("AUTH_CODE")
        self.assertEqual(str(ctx.exception), "Token exchange failed")
        self.assertIs(auth.state, SessionState.UNAUTHENTICATED)

    async def test_exchange_undecodable_reply_is_authentication_error(self):
        auth = make_auth(self, FakeSpotify().add_token_reply(corrupt_gzip))
        with self.assertRaises(AuthenticationError) as ctx:
            await auth.exchange_code("AUTH_CODE")
        self.assertEqual(str(ctx.exception), "Token exchange failed")
        self.assertIsInstance(ctx.exception.__cause__, httpx.DecodingError)
        self.assertFalse(auth.token_manager.is_authenticated())


class TestRefresh(unittest.IsolatedAsyncioTestCase):
    async def test_refresh_without_refresh_token_makes_no_request(self):
        fake = FakeSpotify().add_token_reply((200, TOKEN_RESPONSE))

        with self.assertRaises(AuthenticationError):
            await make_auth(self, fake).refresh()
        with self.assertRaises(AuthenticationError):
            await make_auth(self, fake, valid_token(refresh_token=None)).refresh()

        self.assertEqual(fake.requests, [])

    async def test_refresh_replaces_access_token_and_keeps_refresh_token(self):
        fake = FakeSpotify().add_token_reply(
            (200, {"access_token": "A2", "token_type": "Bearer", "expires_in": 3600, "scope": "x"})
        )
        auth = make_auth(self, fake, valid_token(expires_in=10))

        self.assertEqual(await auth.refresh(), "A2")

        token = auth.token_manager.read()
        self.assertEqual(token.access_token, "A2")
        self.assertEqual(token.refresh_token, "R")
        self.assertGreater(token.expires_at, time.time() + 3000)
        self.assertIs(auth.state, SessionState.AUTHENTICATED)

        form = form_of(fake.requests[0])
        self.assertEqual(form["grant_type"], "refresh_token")
        self.assertEqual(form["refresh_token"], "R")
        self.assertEqual(form["client_secret"], "client-secret")

    async def test_rotated_refresh_token_is_adopted(self):
        fake = FakeSpotify().add_token_reply((200, {**TOKEN_RESPONSE, "access_token": "A2", "refresh_token": "R2"}))
        auth = make_auth(self, fake, valid_token())
        await auth.refresh()
        self.assertEqual(auth.token_manager.read().refresh_token, "R2")

    async def test_state_is_refreshing_while_request_is_in_flight(self):
        seen = []
        auth = None

        def reply(request: httpx.Request) -> httpx.Response:
            seen.append(auth.state)
            return httpx.Response(200, json=TOKEN_RESPONSE)

        fake = FakeSpotify().add_token_reply(reply)
        auth = make_auth(self, fake, valid_token())
        await auth.refresh()

        self.assertEqual(seen, [SessionState.REFRESHING])
        self.assertIs(auth.state, SessionState.AUTHENTICATED)

    async def test_failed_refresh_keeps_prior_snapshot(self):
        fake = FakeSpotify().add_token_reply(
            (400, {"error": "invalid_grant", "error_description": "Refresh token revoked"})
        )
        original = valid_token(expires_in=10)
        auth = make_auth(self, fake, original)

        with self.assertRaises(AuthenticationError) as ctx:
            await auth.refresh()

        self.assertEqual(str(ctx.exception), "Refresh token revoked")
        self.assertIs(auth.token_manager.read(), original)
        self.assertIs(auth.state, SessionState.AUTHENTICATED)

        auth.clear_tokens()
        self.assertIs(auth.state, SessionState.UNAUTHENTICATED)

    async def test_undecodable_refresh_reply_keeps_prior_snapshot(self):
        original = valid_token(expires_in=10)
        auth = make_auth(self, FakeSpotify().add_token_reply(corrupt_gzip), original)

        with self.assertRaises(AuthenticationError) as ctx:
            await auth.refresh()

        self.assertEqual(str(ctx.exception), "Token refresh failed")
        self.assertIs(auth.token_manager.read(), original)


class TestEnsureValid(unittest.IsolatedAsyncioTestCase):
    async def test_not_authenticated(self):
        with self.assertRaises(AuthenticationError) as ctx:
            await make_auth(self, FakeSpotify()).ensure_valid()
        self.assertEqual(str(ctx.exception), "Not authenticated")

    async def test_refreshes_once_inside_five_minute_horizon(self):
        for expires_in in (-60, 0, 120, 299, 300):
            fake = FakeSpotify().add_token_reply((200, TOKEN_RESPONSE))
            auth = make_auth(self, fake, valid_token(expires_in=expires_in))
            await auth.ensure_valid()
            self.assertEqual(len(fake.requests), 1, f"expires_in={expires_in}")

    async def test_no_refresh_outside_horizon(self):
        for expires_in in (310, 3600):
            fake = FakeSpotify().add_token_reply((200, TOKEN_RESPONSE))
            auth = make_auth(self, fake, valid_token(expires_in=expires_in))
            await auth.ensure_valid()
            self.assertEqual(fake.requests, [], f"expires_in={expires_in}")


class TestTokenInfo(unittest.TestCase):
    def test_snapshot_dict_round_trip(self):
        token = valid_token()
        restored = TokenInfo.from_dict(token.to_dict())
        self.assertEqual(restored, token)
        self.assertEqual(token.to_dict()["token_type"], "Bearer")

    def test_is_authenticated_ignores_expiry(self):
        self.assertTrue(TokenManager(valid_token(expires_in=-3600)).is_authenticated())
        self.assertFalse(TokenManager().is_authenticated())


if __name__ == "__main__":
    unittest.main(verbosity=2)
