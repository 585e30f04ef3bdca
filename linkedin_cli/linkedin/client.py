"""Thin async wrapper around httpx for the LinkedIn REST API."""
import logging
from enum import Enum
from typing import Any, Optional

import httpx

from ..config.settings import Settings

logger = logging.getLogger(__name__)


class ErrorCategory(str, Enum):
    """Failure categories for LinkedIn API calls."""
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    SERVER_ERROR = "SERVER_ERROR"
    CLIENT_ERROR = "CLIENT_ERROR"
    TRANSPORT = "TRANSPORT"


def categorize_status(status_code: Optional[int]) -> ErrorCategory:
    """Map an HTTP status code (or None for no response) to a category."""
    if status_code is None:
        return ErrorCategory.TRANSPORT
    if status_code == 400:
        return ErrorCategory.BAD_REQUEST
    if status_code == 401:
        return ErrorCategory.UNAUTHORIZED
    if status_code == 404:
        return ErrorCategory.NOT_FOUND
    if status_code >= 500:
        return ErrorCategory.SERVER_ERROR
    return ErrorCategory.CLIENT_ERROR


class LinkedInAPIError(Exception):
    """Raised when a LinkedIn API call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.category = categorize_status(status_code)

    @classmethod
    def from_response(cls, response: httpx.Response) -> "LinkedInAPIError":
        body = response.text
        return cls(
            f"HTTP error {response.status_code} from {response.request.method} "
            f"{response.request.url}: {body}",
            status_code=response.status_code,
            body=body,
        )


def get_linkedin_headers(settings: Settings, access_token: Optional[str] = None) -> dict:
    """Get headers for LinkedIn API requests."""
    headers = {
        "X-Restli-Protocol-Version": settings.RESTLI_PROTOCOL_VERSION,
        "LinkedIn-Version": settings.LINKEDIN_VERSION,
    }
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    return headers


def json_object(response: httpx.Response) -> dict:
    """Decode a response body that must be a JSON object.

    Raises ValueError for non-JSON bodies and for JSON that isn't an object.
    """
    body = response.json()
    if not isinstance(body, dict):
        raise ValueError(f"expected a JSON object, got {type(body).__name__}")
    return body


def log_api_error(error: LinkedInAPIError) -> None:
    """Log a failed call with a message specific to its category."""
    if error.category is ErrorCategory.BAD_REQUEST:
        logger.error(f"LinkedIn rejected the request (400): {error.body}")
    elif error.category is ErrorCategory.UNAUTHORIZED:
        logger.error("Unauthorised (401): the access token is missing, invalid or expired. "
                     "Run 'linkedin-publish login' to get a new one.")
    elif error.category is ErrorCategory.NOT_FOUND:
        logger.error(f"Not found (404): {error}")
    elif error.category is ErrorCategory.SERVER_ERROR:
        logger.error(f"LinkedIn server error ({error.status_code}): {error.body}")
    elif error.category is ErrorCategory.TRANSPORT:
        logger.error(f"Could not reach LinkedIn: {error}")
    else:
        logger.error(str(error))


class LinkedInClient:
    """Authenticated LinkedIn API client.

    Relative URLs resolve against ``settings.LINKEDIN_API_BASE_URL``; absolute
    URLs (token endpoint, media upload URLs) are used as given. Every request
    carries the Rest.li protocol and API version headers, plus bearer auth
    when an access token is supplied.

    Use as an async context manager so the underlying connection pool is
    closed.
    """

    def __init__(
        self,
        settings: Settings,
        access_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self._client = httpx.AsyncClient(
            base_url=str(settings.LINKEDIN_API_BASE_URL),
            headers=get_linkedin_headers(settings, access_token),
            timeout=settings.REQUEST_TIMEOUT,
            transport=transport,
        )

    async def __aenter__(self) -> "LinkedInClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, raising :class:`LinkedInAPIError` on any failure."""
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            error = LinkedInAPIError.from_response(e.response)
            log_api_error(error)
            raise error from e
        except httpx.TransportError as e:
            error = LinkedInAPIError(f"{method} {url} failed: {e!r}")
            log_api_error(error)
            raise error from e
        return response

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)
