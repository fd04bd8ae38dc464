"""
Data Models Module

This module defines Pydantic models for request/response validation
and data serialization throughout the auth service.

Models are organized by functional area:
- Identity models (verified assertion claims, session user)
- Health check and error envelopes
"""

from datetime import datetime, timezone
from typing import Any, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def split_groups(groups_string: str) -> Tuple[str, ...]:
    """Split the identity provider's comma-joined group list."""
    return tuple(group for group in groups_string.split(",") if group)


# ============================================================================
# Identity Models
# ============================================================================

class User(BaseModel):
    """Authenticated user as stored in the session and returned by /auth/userinfo."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., description="AD account name")
    display_name: str = Field(..., alias="displayName", description="Display name")
    email: str = Field(..., description="User email address")
    groups: Tuple[str, ...] = Field(default=(), description="AD groups, in provider order")


class IdentityAssertion(BaseModel):
    """
    Claims of a verified AD Auth token.

    Field aliases are the claim names the identity provider signs. ``groups``
    is derived from the comma-joined ``groups`` claim when the model is built.
    """

    model_config = ConfigDict(frozen=True)

    user_name: str = Field(..., alias="nameid")
    display_name: str = Field(..., alias="name")
    email: str = Field(..., alias="email")
    groups_string: str = Field(..., description="Raw comma-joined groups claim")
    issuer: str = Field(..., alias="iss")
    request_id: str = Field(..., alias="aud", description="CSRF-Auth token echoed by the provider")
    expiration: datetime = Field(..., alias="exp")
    groups: Tuple[str, ...] = Field(default=())

    @model_validator(mode="before")
    @classmethod
    def derive_groups(cls, data: Any) -> Any:
        if isinstance(data, dict) and "groups" in data:
            raw = data["groups"]
            data = {k: v for k, v in data.items() if k != "groups"}
            data["groups_string"] = raw
            if isinstance(raw, str):
                data["groups"] = split_groups(raw)
        return data


# ============================================================================
# Health Check Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standardized error response model."""
    error: str = Field(..., description="Error type or code")
    message: str = Field(..., description="Human-readable error message")
    timestamp: datetime = Field(default_factory=_utcnow, description="Error timestamp")
