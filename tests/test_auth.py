"""Tests for the OAuth login flow and its one-shot callback server."""

import asyncio
from contextlib import asynccontextmanager
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from dotenv import dotenv_values

from linkedin_cli.config.settings import ConfigurationError, load_settings
from linkedin_cli.linkedin.auth import (
    AuthError,
    OAuthCallbackServer,
    OAuthPhase,
    build_authorization_url,
    exchange_code,
    fetch_username,
)
from linkedin_cli.linkedin.client import LinkedInAPIError, LinkedInClient

TOKEN_PATH = "/oauth/v2/accessToken"


@asynccontextmanager
async def browser(server: OAuthCallbackServer):
    """An HTTP client talking to the callback app in-process."""
    transport = httpx.ASGITransport(app=server.app)
    async with httpx.AsyncClient(transport=transport, base_url=server.settings.callback_base_url) as client:
        yield client


def callback_url(server: OAuthCallbackServer, **params) -> str:
    query = "&".join(f"{k}={v}" for k, v in params.items())
    return f"{server.settings.CALLBACK_PATH}?{query}"


def route_happy_path(api):
    api.route("POST", TOKEN_PATH, json={"access_token": "fresh-token", "expires_in": 5184000})
    api.route("GET", "/v2/userinfo", json={"sub": "member-7", "name": "Ada"})


class FakeUvicornServer:
    """Stands in for uvicorn.Server: serves until asked to exit."""
    instances = []

    def __init__(self, config):
        self.config = config
        self.should_exit = False
        FakeUvicornServer.instances.append(self)

    async def serve(self):
        while not self.should_exit:
            await asyncio.sleep(0.01)


class TestAuthorizationUrl:
    def test_contains_oauth_parameters(self, settings):
        url = build_authorization_url(settings, "state-123")

        parsed = urlparse(url)
        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == "https://www.linkedin.com/oauth/v2/authorization"
        params = parse_qs(parsed.query)
        assert params["response_type"] == ["code"]
        assert params["client_id"] == ["client-id"]
        assert params["redirect_uri"] == ["http://localhost:8080/oauth/callback/linkedin"]
        assert params["state"] == ["state-123"]
        assert params["scope"] == [settings.formatted_scopes]

    def test_scopes_are_percent_encoded(self, settings):
        assert "scope=profile%20email%20w_member_social" in build_authorization_url(settings, "s")

    def test_requires_client_id(self, credentials_file):
        with pytest.raises(ConfigurationError):
            build_authorization_url(load_settings(credentials_file), "s")


class TestTokenExchange:
    def test_exchange_code_posts_form(self, settings, api):
        route_happy_path(api)

        async def call():
            async with LinkedInClient(settings, transport=api.transport) as client:
                return await exchange_code(client, settings, "the-code")

        assert asyncio.run(call()) == "fresh-token"
        request = api.requests_to(TOKEN_PATH)[0]
        assert request.url.host == "www.linkedin.com"
        assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
        assert api.form_body(request) == {
            "grant_type": "authorization_code",
            "code": "the-code",
            "redirect_uri": "http://localhost:8080/oauth/callback/linkedin",
            "client_id": "client-id",
            "client_secret": "client-secret",
        }

    def test_exchange_code_without_token_in_response(self, settings, api):
        api.route("POST", TOKEN_PATH, json={"error": "nope"})

        async def call():
            async with LinkedInClient(settings, transport=api.transport) as client:
                await exchange_code(client, settings, "the-code")

        with pytest.raises(AuthError, match="access_token"):
            asyncio.run(call())

    def test_fetch_username_uses_new_token(self, settings, api):
        route_happy_path(api)

        async def call():
            async with LinkedInClient(settings, transport=api.transport) as client:
                return await fetch_username(client, settings, "fresh-token")

        assert asyncio.run(call()) == "member-7"
        assert api.requests[0].headers["Authorization"] == "Bearer fresh-token"

    def test_fetch_username_propagates_http_errors(self, settings, api):
        api.route("GET", "/v2/userinfo", status_code=401)

        async def call():
            async with LinkedInClient(settings, transport=api.transport) as client:
                await fetch_username(client, settings, "bad-token")

        with pytest.raises(LinkedInAPIError):
            asyncio.run(call())


class TestCallbackRoutes:
    def test_login_redirects_to_linkedin(self, settings):
        async def scenario():
            server = OAuthCallbackServer(settings)
            async with browser(server) as client:
                response = await client.get("/login")
            return server, response

        server, response = asyncio.run(scenario())

        assert response.status_code == 307
        location = response.headers["location"]
        assert location.startswith("https://www.linkedin.com/oauth/v2/authorization?")
        assert f"state={server.state}" in location
        assert server.phase is OAuthPhase.AWAITING_CALLBACK
        assert not server.finished

    def test_successful_callback_saves_credential(self, settings, api, credentials_file):
        route_happy_path(api)

        async def scenario():
            server = OAuthCallbackServer(settings, transport=api.transport)
            async with browser(server) as client:
                response = await client.get(callback_url(server, code="abc", state=server.state))
            return server, response

        server, response = asyncio.run(scenario())

        assert response.status_code == 200
        assert response.text == "You can close this tab"
        assert server.phase is OAuthPhase.SUCCEEDED
        assert server.finished
        assert server.credential.access_token == "fresh-token"
        assert server.credential.username == "member-7"
        assert dotenv_values(credentials_file) == {
            "LINKEDIN_TOKEN": "fresh-token",
            "LINKEDIN_USERNAME": "member-7",
        }

    def test_state_mismatch_is_rejected(self, settings, api, credentials_file):
        route_happy_path(api)

        async def scenario():
            server = OAuthCallbackServer(settings, transport=api.transport)
            async with browser(server) as client:
                response = await client.get(callback_url(server, code="abc", state="forged"))
            return server, response

        server, response = asyncio.run(scenario())

        assert response.status_code == 400
        assert server.phase is OAuthPhase.FAILED
        assert server.finished
        assert api.requests == []
        assert not credentials_file.exists()

    def test_provider_error_is_rejected(self, settings):
        async def scenario():
            server = OAuthCallbackServer(settings)
            async with browser(server) as client:
                response = await client.get(callback_url(
                    server, error="user_cancelled_login", error_description="cancelled", state=server.state,
                ))
            return server, response

        server, response = asyncio.run(scenario())

        assert response.status_code == 400
        assert "cancelled" in response.text
        assert isinstance(server.error, AuthError)

    def test_exchange_failure_answers_500(self, settings, api, credentials_file):
        api.route("POST", TOKEN_PATH, status_code=401, json={"error": "invalid_client"})

        async def scenario():
            server = OAuthCallbackServer(settings, transport=api.transport)
            async with browser(server) as client:
                response = await client.get(callback_url(server, code="abc", state=server.state))
            return server, response

        server, response = asyncio.run(scenario())

        assert response.status_code == 500
        assert server.phase is OAuthPhase.FAILED
        assert isinstance(server.error, LinkedInAPIError)
        assert not credentials_file.exists()

    def test_profile_failure_after_exchange(self, settings, api):
        api.route("POST", TOKEN_PATH, json={"access_token": "fresh-token"})
        api.route("GET", "/v2/userinfo", status_code=500, text="boom")

        async def scenario():
            server = OAuthCallbackServer(settings, transport=api.transport)
            async with browser(server) as client:
                response = await client.get(callback_url(server, code="abc", state=server.state))
            return server, response

        server, response = asyncio.run(scenario())

        assert response.status_code == 500
        assert server.phase is OAuthPhase.FAILED
        assert server.credential is None

    def test_only_one_callback_is_handled(self, settings, api):
        route_happy_path(api)

        async def scenario():
            server = OAuthCallbackServer(settings, transport=api.transport)
            async with browser(server) as client:
                await client.get(callback_url(server, code="abc", state=server.state))
                return await client.get(callback_url(server, code="def", state=server.state))

        response = asyncio.run(scenario())

        assert response.status_code == 410
        assert len(api.requests_to(TOKEN_PATH)) == 1

    def test_concurrent_callbacks_exchange_one_code(self, settings, api):
        route_happy_path(api)

        async def scenario():
            server = OAuthCallbackServer(settings, transport=api.transport)
            async with browser(server) as client:
                return await asyncio.gather(
                    client.get(callback_url(server, code="abc", state=server.state)),
                    client.get(callback_url(server, code="def", state=server.state)),
                )

        responses = asyncio.run(scenario())

        assert sorted(r.status_code for r in responses) == [200, 410]
        assert len(api.requests_to(TOKEN_PATH)) == 1

    def test_non_json_token_response_fails_and_finishes(self, settings, api, credentials_file):
        api.route("POST", TOKEN_PATH, text="<html>gateway</html>")

        async def scenario():
            server = OAuthCallbackServer(settings, transport=api.transport)
            async with browser(server) as client:
                response = await client.get(callback_url(server, code="abc", state=server.state))
            return server, response

        server, response = asyncio.run(scenario())

        assert response.status_code == 500
        assert server.finished
        assert server.phase is OAuthPhase.FAILED
        assert isinstance(server.error, AuthError)
        assert "Malformed token response" in str(server.error)
        assert not credentials_file.exists()

    def test_profile_that_is_not_an_object_fails_and_finishes(self, settings, api):
        api.route("POST", TOKEN_PATH, json={"access_token": "fresh-token"})
        api.route("GET", "/v2/userinfo", json=["member-7"])

        async def scenario():
            server = OAuthCallbackServer(settings, transport=api.transport)
            async with browser(server) as client:
                response = await client.get(callback_url(server, code="abc", state=server.state))
            return server, response

        server, response = asyncio.run(scenario())

        assert response.status_code == 500
        assert server.finished
        assert server.phase is OAuthPhase.FAILED
        assert "Malformed profile response" in str(server.error)


class TestWaitForCallback:
    def setup_method(self):
        FakeUvicornServer.instances.clear()

    def test_returns_credential_and_stops_server(self, settings, api):
        route_happy_path(api)

        async def scenario():
            server = OAuthCallbackServer(settings, transport=api.transport)
            with patch("linkedin_cli.linkedin.auth.uvicorn.Server", FakeUvicornServer):
                waiting = asyncio.create_task(server.wait_for_callback())
                await asyncio.sleep(0.05)
                async with browser(server) as client:
                    await client.get(callback_url(server, code="abc", state=server.state))
                return await asyncio.wait_for(waiting, timeout=5)

        credential = asyncio.run(scenario())

        assert credential.username == "member-7"
        (uvicorn_server,) = FakeUvicornServer.instances
        assert uvicorn_server.should_exit
        assert uvicorn_server.config.port == 8080
        assert uvicorn_server.config.host == "localhost"

    def test_failed_callback_raises_auth_error(self, settings, api):
        api.route("POST", TOKEN_PATH, status_code=400, text="bad code")

        async def scenario():
            server = OAuthCallbackServer(settings, transport=api.transport)
            with patch("linkedin_cli.linkedin.auth.uvicorn.Server", FakeUvicornServer):
                waiting = asyncio.create_task(server.wait_for_callback())
                await asyncio.sleep(0.05)
                async with browser(server) as client:
                    await client.get(callback_url(server, code="abc", state=server.state))
                await asyncio.wait_for(waiting, timeout=5)

        with pytest.raises(AuthError, match="Login failed"):
            asyncio.run(scenario())
        assert FakeUvicornServer.instances[0].should_exit

    def test_missing_client_credentials_fail_before_listening(self, credentials_file):
        settings = load_settings(credentials_file)

        async def scenario():
            server = OAuthCallbackServer(settings)
            with patch("linkedin_cli.linkedin.auth.uvicorn.Server", FakeUvicornServer):
                await server.wait_for_callback()

        with pytest.raises(ConfigurationError):
            asyncio.run(scenario())
        assert FakeUvicornServer.instances == []
