"""
CRM API client: OAuth code exchange and the authenticated user's profile.

Handles:
- Authorization-code exchange against the CRM's OAuth server
- ``/api/v1/users/me`` lookup, the verified source of user/company ids
"""

from __future__ import annotations

from typing import Optional

import httpx
import structlog
from fastapi import Request
from pydantic import ValidationError

from app.core.config import Settings
from app.core.errors import ProviderError
from dealtodo_shared.schemas.installations import CrmProfile, OAuthTokenPayload

log = structlog.get_logger()


class CrmClient:
    """Thin async client for the CRM's OAuth and REST APIs."""

    def __init__(
        self,
        oauth_base_url: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        request_timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._oauth_base_url = oauth_base_url.rstrip("/")
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._request_timeout = request_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "CrmClient":
        return cls(
            oauth_base_url=settings.oauth_base_url,
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            redirect_uri=settings.redirect_uri,
            request_timeout=settings.provider_timeout_seconds,
        )

    async def open(self) -> None:
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self._request_timeout),
            transport=self._transport,
        )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "CrmClient":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # --- OAuth ---

    async def exchange_code(self, code: str) -> OAuthTokenPayload:
        """Trade an authorization code for an access/refresh token pair."""
        assert self._client
        try:
            resp = await self._client.post(
                f"{self._oauth_base_url}/oauth/token",
                auth=(self._client_id, self._client_secret),
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self._redirect_uri,
                },
            )
            resp.raise_for_status()
            return OAuthTokenPayload.model_validate(resp.json())
        except httpx.HTTPStatusError as exc:
            log.error("crm.token_exchange_failed", status=exc.response.status_code)
            raise ProviderError(
                f"OAuth token exchange failed: {exc.response.status_code}",
                upstream_status=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            log.error("crm.oauth_unreachable", error=str(exc))
            raise ProviderError("OAuth server unreachable") from exc
        except (ValueError, ValidationError) as exc:
            raise ProviderError("OAuth server returned a malformed token response") from exc

    # --- Profile ---

    async def fetch_profile(self, api_domain: str, access_token: str) -> CrmProfile:
        """Fetch the profile of the user the token was issued to."""
        assert self._client
        try:
            resp = await self._client.get(
                f"{api_domain.rstrip('/')}/api/v1/users/me",
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Content-Type": "application/json",
                },
            )
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as exc:
            log.error(
                "crm.profile_failed",
                status=exc.response.status_code,
                api_domain=api_domain,
            )
            raise ProviderError(
                f"CRM API error: {exc.response.status_code} {exc.response.reason_phrase}",
                upstream_status=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            log.error("crm.unreachable", api_domain=api_domain, error=str(exc))
            raise ProviderError("CRM API unreachable") from exc
        except ValueError as exc:
            raise ProviderError("CRM API returned a non-JSON response") from exc

        if not isinstance(body, dict) or not body.get("success"):
            log.error("crm.profile_unsuccessful", api_domain=api_domain)
            raise ProviderError("CRM API returned unsuccessful response")

        try:
            return CrmProfile.model_validate(body.get("data") or {})
        except ValidationError as exc:
            raise ProviderError("CRM API returned an incomplete profile") from exc


def get_crm_client(request: Request) -> CrmClient:
    """FastAPI dependency: the CrmClient opened at application startup."""
    return request.app.state.crm_client
