"""
Organization Schemas
Pydantic models for organization validation
"""
import re
from datetime import datetime
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, HttpUrl, field_validator

from helporbit.models.member import MemberRole
from helporbit.models.organization import is_hex_color


SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")
SLUG_MAX_LENGTH = 50


def normalize_slug(value: str) -> str:
    """
    Slugs are compared lower-case, so "Acme" and "acme" are the same slug.

    Raises:
        ValueError: If the slug is empty, too long, or has invalid characters
    """
    slug = (value or "").strip().lower()
    if not slug:
        raise ValueError("Organization slug is required")
    if len(slug) > SLUG_MAX_LENGTH:
        raise ValueError("Slug too long")
    if not SLUG_PATTERN.match(slug):
        raise ValueError("Slug can only contain lowercase letters, numbers, and hyphens")
    if slug.startswith("-") or slug.endswith("-"):
        raise ValueError("Slug cannot start or end with hyphens")
    return slug


def check_metadata(value: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    ``primaryColor``, when given, must be a hex colour such as ``#4f46e5``.

    Raises:
        ValueError: If ``primaryColor`` is anything else
    """
    color = (value or {}).get("primaryColor")
    if color is not None and not is_hex_color(color):
        raise ValueError("primaryColor must be a hex colour such as #4f46e5")
    return value


class OrganizationCreate(BaseModel):
    """Schema for creating an organization"""
    name: str = Field(..., min_length=1, max_length=100)
    slug: str
    logo: Optional[HttpUrl] = None
    description: Optional[str] = Field(None, max_length=500)
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("slug", mode="before")
    @classmethod
    def validate_slug(cls, value):
        return normalize_slug(value)

    @field_validator("logo", mode="before")
    @classmethod
    def empty_logo(cls, value):
        return value or None

    @field_validator("metadata")
    @classmethod
    def validate_metadata(cls, value):
        return check_metadata(value)


class OrganizationUpdate(BaseModel):
    """
    Schema for updating an organization.

    Only fields present in the request change; an explicit null or empty
    ``logo`` removes the logo.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    slug: Optional[str] = None
    logo: Optional[HttpUrl] = None
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("slug", mode="before")
    @classmethod
    def validate_slug(cls, value):
        return normalize_slug(value) if value is not None else None

    @field_validator("logo", mode="before")
    @classmethod
    def empty_logo(cls, value):
        return value or None

    @field_validator("metadata")
    @classmethod
    def validate_metadata(cls, value):
        return check_metadata(value)


class OrganizationResponse(BaseModel):
    """Schema for organization response"""
    id: str
    name: str
    slug: str
    logo: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias="metadata_")
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        populate_by_name = True

    @field_validator("metadata", mode="before")
    @classmethod
    def default_metadata(cls, value):
        return value or {}


class OrganizationInfo(BaseModel):
    """Public branding information shown on login and search pages"""
    id: str
    slug: str
    name: str
    domain: Optional[str] = None
    logo_url: Optional[str] = None
    primary_color: str
    is_public: bool


class UserOrganizationResponse(OrganizationResponse):
    """Organization as seen by one of its members"""
    role: MemberRole
    joined_at: datetime


class SlugAvailability(BaseModel):
    slug: str
    available: bool
