"""OAuth installation schemas shared by the server and the CRM client."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_LANGUAGE = "en"


# ---------------------------------------------------------------------------
# Provider payloads
# ---------------------------------------------------------------------------

class OAuthTokenPayload(BaseModel):
    """Token response issued by the CRM's OAuth server."""
    access_token: str
    refresh_token: str
    expires_in: int = Field(ge=0)
    token_type: str = "Bearer"
    scope: str = ""
    api_domain: str


class CrmLanguage(BaseModel):
    language_code: Optional[str] = None
    country_code: Optional[str] = None


class CrmProfile(BaseModel):
    """The ``/users/me`` profile: the only trusted source of user/company ids."""
    model_config = ConfigDict(extra="allow")

    id: int
    company_id: int
    company_name: str
    company_domain: str
    company_country: Optional[str] = None
    email: str
    name: str
    locale: Optional[str] = None
    language: Optional[CrmLanguage] = None
    timezone_name: Optional[str] = None
    is_admin: bool = False
    active_flag: bool = True

    @property
    def language_code(self) -> str:
        if self.language and self.language.language_code:
            return self.language.language_code
        return DEFAULT_LANGUAGE


# ---------------------------------------------------------------------------
# Installation views
# ---------------------------------------------------------------------------

class InstallationResult(BaseModel):
    """Provider-verified external ids of a saved installation."""
    user_id: int
    company_id: int


class InstallationView(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str
    scope: str
    expires_at: datetime
    api_domain: str
    user_id: int
    company_id: int


class UninstallRequest(BaseModel):
    """Body of the marketplace's app-uninstall callback."""
    model_config = ConfigDict(extra="ignore")

    user_id: int
    company_id: int


class ProfileResponse(BaseModel):
    success: bool = True
    data: CrmProfile
