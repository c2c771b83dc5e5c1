"""Credential and installation models."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class CredentialRecord(BaseModel):
    """OAuth2 credentials and API location of one installation."""

    model_config = ConfigDict(frozen=True)

    installation_id: str
    client_id: str
    client_secret: str
    authorization_url: str
    token_url: str
    api_base_url: str
    room_id: int | None = None
    group_id: int | None = None

    @field_validator("api_base_url")
    @classmethod
    def _ensure_trailing_slash(cls, value: str) -> str:
        return value if value.endswith("/") else value + "/"

    @model_validator(mode="after")
    def _require_scope(self) -> CredentialRecord:
        if self.room_id is None and self.group_id is None:
            raise ValueError("credential needs a room_id or a group_id")
        return self

    @property
    def is_room(self) -> bool:
        return self.room_id is not None

    @property
    def is_global(self) -> bool:
        return self.room_id is None


@dataclass(slots=True)
class CachedToken:
    """Access token held by a single client until it expires."""

    token: str
    expires_at: float

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


class InstallPayload(BaseModel):
    """Body the platform posts to the installed callback."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    installation_id: str = Field(..., alias="oauthId")
    client_secret: str = Field(..., alias="oauthSecret")
    capabilities_url: str = Field(..., alias="capabilitiesUrl")
    room_id: int | None = Field(default=None, alias="roomId")
    group_id: int | None = Field(default=None, alias="groupId")

    @property
    def client_id(self) -> str:
        # The platform issues one OAuth client per installation.
        return self.installation_id


class _OAuth2Provider(BaseModel):
    model_config = ConfigDict(extra="ignore")

    authorization_url: str = Field(..., alias="authorizationUrl")
    token_url: str = Field(..., alias="tokenUrl")


class _Capabilities(BaseModel):
    model_config = ConfigDict(extra="ignore")

    oauth2_provider: _OAuth2Provider = Field(..., alias="oauth2Provider")


class _Links(BaseModel):
    model_config = ConfigDict(extra="ignore")

    api: str


class CapabilityDocument(BaseModel):
    """The subset of the platform's capability document the add-on reads."""

    model_config = ConfigDict(extra="ignore")

    capabilities: _Capabilities
    links: _Links

    @property
    def authorization_url(self) -> str:
        return self.capabilities.oauth2_provider.authorization_url

    @property
    def token_url(self) -> str:
        return self.capabilities.oauth2_provider.token_url

    @property
    def api_base_url(self) -> str:
        return self.links.api
