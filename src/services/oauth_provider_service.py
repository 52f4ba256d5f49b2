"""Google and Facebook OAuth clients: authorization redirect and profile fetch."""

from typing import Optional
from urllib.parse import urlencode

import httpx
import structlog

from src.config import Settings, get_settings
from src.models.user import OAuthProfile, OAuthProviderName
from src.services.errors import NotFoundError, UnauthorizedError

logger = structlog.get_logger(__name__)

# Shared across providers; created lazily, closed at shutdown
_http_client: Optional[httpx.AsyncClient] = None


async def get_http_client() -> httpx.AsyncClient:
    """Get or create the HTTP client used for provider calls."""
    global _http_client
    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(get_settings().oauth_http_timeout)
        )
    return _http_client


async def close_http_client() -> None:
    """Close the provider HTTP client."""
    global _http_client
    if _http_client is not None and not _http_client.is_closed:
        await _http_client.aclose()
    _http_client = None


class OAuthProvider:
    """Authorization-code flow against a single provider.

    Subclasses supply endpoints, credentials and profile parsing; the
    token exchange and error handling are shared.
    """

    name: OAuthProviderName
    authorize_url: str
    token_url: str
    scope: str

    def __init__(self, client_id: str, client_secret: str, callback_url: str):
        self.client_id = client_id
        self.client_secret = client_secret
        self.callback_url = callback_url

    def authorization_url(self, state: str) -> str:
        """URL to send the browser to, carrying the signed state."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.callback_url,
            "response_type": "code",
            "scope": self.scope,
            "state": state,
        }
        return f"{self.authorize_url}?{urlencode(params)}"

    async def fetch_profile(self, code: str) -> OAuthProfile:
        """Exchange the provider's code for an access token, then read the profile.

        Raises:
            UnauthorizedError: oauth_failed on any provider or transport error,
                or when the profile has no email
        """
        client = await get_http_client()
        try:
            access_token = await self._exchange_code(client, code)
            data = await self._get_profile(client, access_token)
            profile = self._parse_profile(data)
        except httpx.HTTPStatusError as e:
            logger.error(
                "oauth_provider_http_error",
                provider=self.name,
                status_code=e.response.status_code,
            )
            raise UnauthorizedError(
                "OAuth authentication failed. Please try again.", code="oauth_failed"
            ) from e
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error(
                "oauth_provider_error",
                provider=self.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise UnauthorizedError(
                "OAuth authentication failed. Please try again.", code="oauth_failed"
            ) from e

        logger.info("oauth_profile_fetched", provider=self.name)
        return profile

    async def _exchange_code(self, client: httpx.AsyncClient, code: str) -> str:
        response = await client.post(
            self.token_url,
            data={
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.callback_url,
                "grant_type": "authorization_code",
            },
            headers={"Accept": "application/json"},
        )
        response.raise_for_status()
        return response.json()["access_token"]

    async def _get_profile(self, client: httpx.AsyncClient, access_token: str) -> dict:
        raise NotImplementedError

    def _parse_profile(self, data: dict) -> OAuthProfile:
        raise NotImplementedError

    def _require_email(self, email: Optional[str]) -> str:
        if not email:
            label = self.name.capitalize()
            raise UnauthorizedError(
                f"No email found in {label} profile", code="oauth_failed"
            )
        return email


class GoogleOAuthProvider(OAuthProvider):
    name = "google"
    authorize_url = "https://accounts.google.com/o/oauth2/v2/auth"
    token_url = "https://oauth2.googleapis.com/token"
    userinfo_url = "https://openidconnect.googleapis.com/v1/userinfo"
    scope = "openid email profile"

    async def _get_profile(self, client: httpx.AsyncClient, access_token: str) -> dict:
        response = await client.get(
            self.userinfo_url,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        response.raise_for_status()
        return response.json()

    def _parse_profile(self, data: dict) -> OAuthProfile:
        display_name = (
            data.get("name") or data.get("given_name") or data.get("family_name") or None
        )
        return OAuthProfile(
            provider="google",
            provider_id=str(data["sub"]),
            email=self._require_email(data.get("email")),
            display_name=display_name,
            photo_url=data.get("picture") or None,
        )


class FacebookOAuthProvider(OAuthProvider):
    name = "facebook"
    authorize_url = "https://www.facebook.com/v19.0/dialog/oauth"
    token_url = "https://graph.facebook.com/v19.0/oauth/access_token"
    profile_url = "https://graph.facebook.com/me"
    scope = "email"
    profile_fields = "id,email,first_name,last_name,picture.type(large)"

    async def _get_profile(self, client: httpx.AsyncClient, access_token: str) -> dict:
        response = await client.get(
            self.profile_url,
            params={"fields": self.profile_fields, "access_token": access_token},
        )
        response.raise_for_status()
        return response.json()

    def _parse_profile(self, data: dict) -> OAuthProfile:
        full_name = f"{data.get('first_name') or ''} {data.get('last_name') or ''}".strip()
        picture = (data.get("picture") or {}).get("data") or {}
        return OAuthProfile(
            provider="facebook",
            provider_id=str(data["id"]),
            email=self._require_email(data.get("email")),
            display_name=full_name or None,
            photo_url=picture.get("url") or None,
        )


def get_oauth_provider(
    name: OAuthProviderName, settings: Optional[Settings] = None
) -> OAuthProvider:
    """Build the client for a provider from configuration.

    Raises:
        NotFoundError: If the provider's credentials are not configured
    """
    settings = settings or get_settings()

    if name == "google":
        credentials = (
            settings.google_client_id,
            settings.google_client_secret,
            settings.google_callback_url,
        )
        provider_cls = GoogleOAuthProvider
    else:
        credentials = (
            settings.facebook_app_id,
            settings.facebook_app_secret,
            settings.facebook_callback_url,
        )
        provider_cls = FacebookOAuthProvider

    if not all(credentials):
        logger.warning("oauth_provider_not_configured", provider=name)
        raise NotFoundError(f"{name.capitalize()} sign-in is not available")

    return provider_cls(*credentials)
