"""Solar Analytics portal API client.

The portal issues a short-lived bearer token from /v3/token (HTTP Basic auth)
which must accompany every data request. Token bookkeeping is delegated to
TokenManager; this module performs the HTTP calls and decodes responses into
pydantic models.
"""

import aiohttp
import asyncio
import logging
from datetime import date
from typing import Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .models import Credentials, LiveData, SiteData, Token
from .token_manager import ClockSkewError, TokenManager

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

__all__ = [
    "SolarAnalyticsClient",
    "SolarAnalyticsError",
    "CredentialError",
    "TransportError",
    "DecodeError",
    "TokenError",
    "ClockSkewError",
]


class SolarAnalyticsError(Exception):
    """Base error for Solar Analytics API failures."""
    pass


class CredentialError(SolarAnalyticsError):
    """The portal rejected the account credentials or bearer token."""
    pass


class TransportError(SolarAnalyticsError):
    """Timeout, connection failure or unexpected HTTP status."""
    pass


class DecodeError(SolarAnalyticsError):
    """Response body was not the expected JSON document."""
    pass


class TokenError(SolarAnalyticsError):
    """A data request was abandoned because no valid token was available."""
    pass


class SolarAnalyticsClient:
    """Async client for the Solar Analytics portal API."""

    BASE_URL = "https://portal.solaranalytics.com.au/api"

    ENDPOINTS = {
        "token": "/v3/token",
        "live": "/v3/live_site_data",
        "site": "/v2/site_data",
    }

    def __init__(
        self,
        credentials: Credentials,
        base_url: Optional[str] = None,
        timeout: float = 5.0,
        session: Optional[aiohttp.ClientSession] = None,
        token_manager: Optional[TokenManager] = None,
    ):
        """Initialize the client.

        Args:
            credentials: Account username, password and site id
            base_url: Portal API root (default: BASE_URL)
            timeout: Total timeout for each request in seconds
            session: Optional pre-built session (used by tests)
            token_manager: Optional token manager; one bound to this client's
                token request is created by default
        """
        self.credentials = credentials
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self.tokens = token_manager or TokenManager(self.request_token)

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def close(self):
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def _get_json(self, url: str, **kwargs) -> dict:
        """GET a URL and return its decoded JSON body.

        Raises:
            CredentialError: on HTTP 401/403
            TransportError: on timeout, connection error or other non-200
            DecodeError: if the body is not a JSON object
        """
        try:
            session = await self._get_session()
            async with session.get(url, **kwargs) as response:
                if response.status in (401, 403):
                    raise CredentialError(f"HTTP {response.status} from {url}")
                if response.status != 200:
                    raise TransportError(f"HTTP {response.status} from {url}")
                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    raise DecodeError(f"Invalid JSON from {url}: {e}") from e
        except asyncio.TimeoutError as e:
            raise TransportError(f"Timeout fetching {url}") from e
        except aiohttp.ClientError as e:
            raise TransportError(f"Error fetching {url}: {e}") from e

        if not isinstance(data, dict):
            raise DecodeError(f"Unexpected {type(data).__name__} payload from {url}")
        return data

    # =========================================================================
    # Authentication
    # =========================================================================

    async def request_token(self) -> Token:
        """Request a fresh bearer token using HTTP Basic auth."""
        url = f"{self.base_url}{self.ENDPOINTS['token']}"
        auth = aiohttp.BasicAuth(self.credentials.username, self.credentials.password)
        headers = {"Authorization": auth.encode(), "Accept": "application/json"}
        data = await self._get_json(url, headers=headers)

        try:
            return Token(
                token=data["token"],
                expires=data.get("expires") or "",
                duration=data.get("duration") or 0,
            )
        except (KeyError, TypeError, ValidationError) as e:
            raise DecodeError(f"Malformed token response: {e}") from e

    # =========================================================================
    # Data Endpoints
    # =========================================================================

    async def fetch(self, url: str, model: Type[ModelT]) -> ModelT:
        """Fetch an authenticated endpoint and decode it into `model`."""
        try:
            token = await self.tokens.ensure_valid()
        except SolarAnalyticsError as e:
            raise TokenError(f"Failed to get token: {e}") from e

        headers = {
            "Authorization": f"Bearer {token.token}",
            "Accept": "application/json",
        }
        try:
            data = await self._get_json(url, headers=headers)
        except CredentialError:
            # Token was revoked early; the next attempt should request a new one
            self.tokens.invalidate()
            raise

        try:
            return model(**data)
        except ValidationError as e:
            raise DecodeError(f"Unexpected {model.__name__} payload: {e}") from e

    def live_data_url(self) -> str:
        return (
            f"{self.base_url}{self.ENDPOINTS['live']}"
            f"?site_id={self.credentials.site_id}&last_six=true"
        )

    def site_data_url(self, day: date) -> str:
        d = day.strftime("%Y%m%d")
        return (
            f"{self.base_url}{self.ENDPOINTS['site']}/{self.credentials.site_id}"
            f"?tstart={d}&tend={d}&all=true&gran=minute&trunc=false"
        )

    async def get_live_data(self) -> LiveData:
        """Fetch the last six live readings for the site."""
        return await self.fetch(self.live_data_url(), LiveData)

    async def get_site_data(self, day: date) -> SiteData:
        """Fetch per-minute site data for a single local calendar day."""
        return await self.fetch(self.site_data_url(day), SiteData)
