"""
Pydantic schemas for Accurate credentials.

Secrets (signature secret, tokens) are accepted on create but never exposed
through the read schema.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BaseCredentialSchema(BaseModel):
    """Base schema for credential input."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        extra="forbid",
    )


class CredentialCreate(BaseCredentialSchema):
    """Schema for persisting a credential after OAuth or manual entry."""

    owner_id: str = Field(..., min_length=1, max_length=100, description="Owning user")
    app_key: str = Field(..., min_length=1, description="Accurate application key")
    signature_secret: str = Field(..., min_length=1, description="HMAC signature secret")
    api_token: str = Field(..., min_length=1, description="OAuth access token")
    refresh_token: Optional[str] = Field(None, description="OAuth refresh token")
    host: str = Field(..., min_length=1, description="Database host name")
    session: Optional[str] = Field(None, description="Database session id")
    database_id: Optional[str] = Field(None, description="Accurate database id")

    @field_validator("host")
    @classmethod
    def validate_plain_host(cls, v):
        """Host must be stored without scheme or path."""
        if "://" in v or "/" in v:
            raise ValueError("Host must be a plain host name without scheme or path")
        return v


class CredentialTokenUpdate(BaseCredentialSchema):
    """Fields replaced on token refresh."""

    api_token: str = Field(..., min_length=1)
    refresh_token: Optional[str] = None
    host: str = Field(..., min_length=1)
    session: Optional[str] = None
    database_id: Optional[str] = None


class CredentialRead(BaseModel):
    """Schema for reading credentials (no secrets)."""

    id: str = Field(..., description="Credential ID")
    owner_id: str = Field(..., description="Owning user")
    app_key: str = Field(..., description="Accurate application key")
    host: str = Field(..., description="Database host name")
    database_id: Optional[str] = Field(None, description="Accurate database id")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")

    model_config = ConfigDict(from_attributes=True)
