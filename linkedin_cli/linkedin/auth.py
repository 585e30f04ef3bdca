"""LinkedIn OAuth 2.0 authorization code flow.

A short-lived Starlette app served by uvicorn on localhost exposes two routes:

- ``/login`` redirects the browser to LinkedIn's authorization page.
- ``/oauth/callback/linkedin`` receives the authorization code, exchanges it
  for an access token, looks up the member id and saves both to the
  credential file.

The server handles exactly one callback and then shuts itself down.
"""
import asyncio
import logging
import secrets
from enum import Enum
from typing import Optional
from urllib.parse import quote, urlencode

import httpx
import uvicorn
from starlette.applications import Starlette
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import PlainTextResponse, RedirectResponse
from starlette.routing import Route

from ..config.settings import Settings
from .client import LinkedInAPIError, LinkedInClient, json_object
from .credentials import Credential, CredentialStore

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Raised when authentication fails."""
    pass


class OAuthPhase(str, Enum):
    """Progress of a single login attempt."""
    AWAITING_LOGIN = "AWAITING_LOGIN"
    AWAITING_CALLBACK = "AWAITING_CALLBACK"
    TOKEN_EXCHANGED = "TOKEN_EXCHANGED"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


def build_authorization_url(settings: Settings, state: str) -> str:
    """Build the LinkedIn authorization URL the browser is redirected to."""
    client_id, _ = settings.require_client_credentials()
    params = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": settings.redirect_uri,
        "state": state,
        "scope": settings.formatted_scopes,
    }
    return f"{settings.LINKEDIN_AUTH_URL}?{urlencode(params, quote_via=quote)}"


async def exchange_code(client: LinkedInClient, settings: Settings, code: str) -> str:
    """Exchange an authorization code for an access token."""
    client_id, client_secret = settings.require_client_credentials()
    response = await client.post(
        str(settings.LINKEDIN_TOKEN_URL),
        data={
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": settings.redirect_uri,
            "client_id": client_id,
            "client_secret": client_secret,
        },
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    try:
        access_token = json_object(response).get("access_token")
    except ValueError as e:
        raise AuthError(f"Malformed token response: {response.text[:200]}") from e
    if not access_token:
        raise AuthError("Token response did not include an access_token")
    return access_token


async def fetch_username(client: LinkedInClient, settings: Settings, access_token: str) -> str:
    """Return the member id ('sub') of the token's owner."""
    response = await client.get(
        settings.LINKEDIN_USERINFO_PATH,
        headers={"Authorization": f"Bearer {access_token}"},
    )
    try:
        user_id = json_object(response).get("sub")
    except ValueError as e:
        raise AuthError(f"Malformed profile response: {response.text[:200]}") from e
    if not user_id:
        raise AuthError("Could not get user ID from profile")
    return user_id


class OAuthCallbackServer:
    """Local listener for one OAuth login.

    Call :meth:`wait_for_callback` to start serving; it returns once the
    callback route has answered a single request, successful or not.
    """

    def __init__(
        self,
        settings: Settings,
        store: Optional[CredentialStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.store = store or CredentialStore(settings.CREDENTIALS_FILE)
        self.state = secrets.token_urlsafe(16)
        self.phase = OAuthPhase.AWAITING_LOGIN
        self.credential: Optional[Credential] = None
        self.error: Optional[Exception] = None
        self._transport = transport
        self._handling = False
        self._finished = asyncio.Event()
        self.app = Starlette(routes=[
            Route(settings.LOGIN_PATH, self.login),
            Route(settings.CALLBACK_PATH, self.callback),
        ])

    @property
    def finished(self) -> bool:
        return self._finished.is_set()

    async def login(self, request: Request) -> RedirectResponse:
        self.phase = OAuthPhase.AWAITING_CALLBACK
        return RedirectResponse(build_authorization_url(self.settings, self.state))

    async def callback(self, request: Request) -> PlainTextResponse:
        if self._handling or self.finished:
            return PlainTextResponse("Login already handled, restart to try again", status_code=410)
        # Claimed before the first await so concurrent callbacks are turned away
        self._handling = True

        params = request.query_params
        if params.get("error"):
            description = params.get("error_description") or params["error"]
            return self._fail(AuthError(f"LinkedIn denied authorization: {description}"), 400)
        if params.get("state") != self.state:
            return self._fail(AuthError("OAuth state mismatch"), 400)
        code = params.get("code")
        if not code:
            return self._fail(AuthError("Callback is missing the authorization code"), 400)

        try:
            async with LinkedInClient(self.settings, transport=self._transport) as client:
                access_token = await exchange_code(client, self.settings, code)
                self.phase = OAuthPhase.TOKEN_EXCHANGED
                username = await fetch_username(client, self.settings, access_token)
            credential = Credential(access_token=access_token, username=username)
            self.store.save(credential)
        except (AuthError, LinkedInAPIError, OSError) as e:
            return self._fail(e, 500)

        self.credential = credential
        self.phase = OAuthPhase.SUCCEEDED
        logger.info(f"✅ Logged in as {username}")
        return PlainTextResponse("You can close this tab", background=BackgroundTask(self._finish))

    async def _finish(self) -> None:
        # Runs after the response is sent; must stay on the event loop thread
        self._finished.set()

    def _fail(self, error: Exception, status_code: int) -> PlainTextResponse:
        logger.error(f"OAuth callback failed: {error}")
        self.error = error
        self.phase = OAuthPhase.FAILED
        return PlainTextResponse(str(error), status_code=status_code,
                                 background=BackgroundTask(self._finish))

    async def wait_for_callback(self) -> Credential:
        """Serve until one callback has been handled, then stop."""
        # Fail before binding the port if the app isn't configured
        self.settings.require_client_credentials()

        config = uvicorn.Config(
            self.app,
            host=self.settings.CALLBACK_HOST,
            port=self.settings.CALLBACK_PORT,
            log_level="warning",
        )
        server = uvicorn.Server(config)
        serving = asyncio.create_task(server.serve())
        waiting = asyncio.create_task(self._finished.wait())
        logger.info(f"Open {self.settings.login_url} to retrieve an access token")
        try:
            await asyncio.wait({serving, waiting}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            server.should_exit = True
            waiting.cancel()
            await serving

        if self.error is not None:
            raise AuthError(f"Login failed: {self.error}") from self.error
        if self.credential is None:
            raise AuthError("Callback server stopped before login completed")
        return self.credential


async def login(settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> Credential:
    """Run the interactive OAuth flow and persist the resulting credential."""
    server = OAuthCallbackServer(settings, transport=transport)
    return await server.wait_for_callback()
