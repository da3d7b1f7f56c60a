"""OAuth token handling for the Google Drive API."""

import asyncio
import logging
from typing import Any, Callable, Optional
from urllib.parse import urlencode

import httpx

from .exceptions import DriveAPIError, DriveAuthRequiredError, DriveNetworkError
from .utils import now_millis

logger = logging.getLogger(__name__)

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
REDIRECT_URI = "urn:ietf:wg:oauth:2.0:oob"
DRIVE_SCOPE = "https://www.googleapis.com/auth/drive.file"

# Refresh a little before the token actually expires
EXPIRY_MARGIN_MS = 60 * 1000


class StaticTokenProvider:
    """Token provider for a fixed access token (no refresh possible)."""

    def __init__(self, access_token: Optional[str]):
        self.access_token = access_token

    async def get_valid_access_token(self, force_refresh: bool = False) -> str:
        if not self.access_token:
            raise DriveAuthRequiredError("No access token configured")
        if force_refresh:
            raise DriveAuthRequiredError(
                "Access token was rejected and cannot be refreshed"
            )
        return self.access_token


class OAuthTokenProvider:
    """Token provider that refreshes the access token with a refresh token.

    Concurrent callers share a single refresh: the lock makes the second
    caller wait and then reuse the freshly obtained token.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        expiry: Optional[int] = None,
        on_refresh: Optional[Callable[[str, Optional[int]], None]] = None,
        token_url: str = TOKEN_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize token provider.

        Args:
            client_id: OAuth client ID
            client_secret: OAuth client secret
            access_token: Current access token, if any
            refresh_token: Refresh token used to obtain new access tokens
            expiry: Expiry of the access token in epoch milliseconds
            on_refresh: Called with (access_token, expiry) after a refresh,
                e.g. to persist the new token
            token_url: Token endpoint
            transport: Optional httpx transport (used by tests)
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.expiry = expiry
        self.on_refresh = on_refresh
        self.token_url = token_url
        self._transport = transport
        self._lock = asyncio.Lock()

    def _is_expired(self) -> bool:
        if not self.access_token:
            return True
        if self.expiry is None:
            return False
        return now_millis() >= self.expiry - EXPIRY_MARGIN_MS

    async def get_valid_access_token(self, force_refresh: bool = False) -> str:
        """Return an access token, refreshing it when needed.

        Args:
            force_refresh: Refresh even if the current token looks valid

        Returns:
            Access token

        Raises:
            DriveAuthRequiredError: If no token can be obtained
        """
        stale = self.access_token
        async with self._lock:
            # Another caller refreshed while we were waiting
            if force_refresh and self.access_token != stale and self.access_token:
                return self.access_token
            if not force_refresh and self.access_token and not self._is_expired():
                return self.access_token
            return await self._refresh()

    async def _refresh(self) -> str:
        if not self.refresh_token:
            raise DriveAuthRequiredError(
                "Access token expired and no refresh token is available. "
                "Run 'pydrivesync init' to authenticate."
            )

        logger.debug("Refreshing access token")
        data = await _post_token_request(
            self.token_url,
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": self.refresh_token,
                "grant_type": "refresh_token",
            },
            self._transport,
        )
        self.access_token = data["access_token"]
        expires_in = data.get("expires_in")
        self.expiry = now_millis() + int(expires_in) * 1000 if expires_in else None
        if data.get("refresh_token"):
            self.refresh_token = data["refresh_token"]

        if self.on_refresh is not None:
            self.on_refresh(self.access_token, self.expiry)
        logger.info("Access token refreshed")
        return self.access_token


async def _post_token_request(
    url: str,
    form: dict[str, str],
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict[str, Any]:
    try:
        async with httpx.AsyncClient(timeout=30.0, transport=transport) as client:
            response = await client.post(url, data=form)
    except httpx.RequestError as e:
        raise DriveNetworkError(f"Network error during token request: {e}") from e

    if response.status_code in (400, 401):
        raise DriveAuthRequiredError(
            f"Token request rejected: {response.text}", response.status_code
        )
    if not response.is_success:
        raise DriveAPIError(
            f"Token request failed with status {response.status_code}",
            response.status_code,
        )
    try:
        data: dict[str, Any] = response.json()
    except ValueError as e:
        raise DriveAPIError("Invalid JSON in token response") from e
    if "access_token" not in data:
        raise DriveAuthRequiredError("Token response contains no access token")
    return data


def build_auth_url(client_id: str) -> str:
    """Build the consent URL the user opens to authorize the app.

    Args:
        client_id: OAuth client ID

    Returns:
        URL to open in a browser
    """
    params = {
        "client_id": client_id,
        "redirect_uri": REDIRECT_URI,
        "response_type": "code",
        "scope": DRIVE_SCOPE,
        "access_type": "offline",
        "prompt": "consent",
    }
    return f"{AUTH_URL}?{urlencode(params)}"


async def exchange_code(
    client_id: str,
    client_secret: str,
    code: str,
    token_url: str = TOKEN_URL,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict[str, Any]:
    """Exchange an authorization code for tokens.

    Args:
        client_id: OAuth client ID
        client_secret: OAuth client secret
        code: Authorization code shown after consent
        token_url: Token endpoint
        transport: Optional httpx transport (used by tests)

    Returns:
        Dictionary with access_token, refresh_token and expiry (epoch ms)
    """
    data = await _post_token_request(
        token_url,
        {
            "client_id": client_id,
            "client_secret": client_secret,
            "code": code.strip(),
            "grant_type": "authorization_code",
            "redirect_uri": REDIRECT_URI,
        },
        transport,
    )
    expires_in = data.get("expires_in")
    return {
        "access_token": data["access_token"],
        "refresh_token": data.get("refresh_token"),
        "expiry": now_millis() + int(expires_in) * 1000 if expires_in else None,
    }
