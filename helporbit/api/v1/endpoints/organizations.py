"""
Organization API Endpoints
Create, browse, update and delete organizations
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from helporbit.db.session import get_db
from helporbit.models.member import Member
from helporbit.models.user import User
from helporbit.schemas.organization import (
    OrganizationCreate,
    OrganizationInfo,
    OrganizationResponse,
    OrganizationUpdate,
    SlugAvailability,
    UserOrganizationResponse,
)
from helporbit.schemas.response import MessageResponse
from helporbit.schemas.user import UserResponse
from helporbit.api.dependencies import get_current_active_user, get_current_member
from helporbit.services.membership_service import get_membership_service
from helporbit.services.organization_service import organization_service

router = APIRouter(prefix="/organizations", tags=["Organizations"])
membership_service = get_membership_service()


@router.post("", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
async def create_organization(
    organization_data: OrganizationCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """
    Create an organization. The creator becomes its owner and it becomes
    their active organization.
    """
    metadata = dict(organization_data.metadata or {})
    if organization_data.description:
        metadata["description"] = organization_data.description

    organization = await organization_service.create_organization(
        db,
        user_id=current_user.id,
        name=organization_data.name,
        slug=organization_data.slug,
        logo=str(organization_data.logo) if organization_data.logo else None,
        metadata=metadata,
    )
    return OrganizationResponse.model_validate(organization)


@router.get("", response_model=List[UserOrganizationResponse])
async def list_my_organizations(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """
    Organizations the current user belongs to, with their role in each.
    """
    rows = await organization_service.list_user_organizations(db, current_user.id)
    return [
        UserOrganizationResponse(
            **OrganizationResponse.model_validate(organization).model_dump(),
            role=member.role,
            joined_at=member.created_at,
        )
        for organization, member in rows
    ]


@router.get("/search", response_model=List[OrganizationInfo])
async def search_organizations(
    q: str = Query("", max_length=100, description="Name, slug or domain fragment"),
    limit: int = Query(20, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
):
    """
    Search public organizations. Private organizations never appear.
    """
    organizations = await organization_service.search_organizations(db, q, limit=limit)
    return [
        OrganizationInfo(
            id=organization.id,
            slug=organization.slug,
            name=organization.name,
            domain=organization.domain,
            logo_url=organization.logo,
            primary_color=organization.primary_color,
            is_public=organization.is_public,
        )
        for organization in organizations
    ]


@router.get("/check-slug", response_model=SlugAvailability)
async def check_slug(
    slug: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """
    Advisory slug availability check for the create form.
    """
    available = await organization_service.check_slug_available(db, slug)
    return SlugAvailability(slug=slug.strip().lower(), available=available)


@router.get("/info/{slug}", response_model=OrganizationInfo)
async def get_organization_info(
    slug: str,
    db: AsyncSession = Depends(get_db),
):
    """
    Public branding for an organization's login page.
    """
    return await organization_service.get_organization_info(db, slug)


@router.get("/by-slug/{slug}", response_model=OrganizationResponse)
async def get_organization_by_slug(
    slug: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    organization = await organization_service.get_organization_by_slug(db, slug)
    await membership_service.require_member(db, organization.id, current_user.id)
    return OrganizationResponse.model_validate(organization)


@router.get("/{organization_id}", response_model=OrganizationResponse)
async def get_organization(
    organization_id: str,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member)
):
    organization = await organization_service.get_organization(db, organization_id)
    return OrganizationResponse.model_validate(organization)


@router.patch("/{organization_id}", response_model=OrganizationResponse)
async def update_organization(
    organization_id: str,
    organization_data: OrganizationUpdate,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member)
):
    """
    Update organization details (owner or admin).
    Sending ``logo: null`` removes the logo; leaving it out keeps it.
    """
    logo = None
    if "logo" in organization_data.model_fields_set:
        logo = str(organization_data.logo) if organization_data.logo else ""

    organization = await organization_service.update_organization(
        db,
        organization_id,
        actor=member,
        name=organization_data.name,
        slug=organization_data.slug,
        logo=logo,
        metadata=organization_data.metadata,
    )
    return OrganizationResponse.model_validate(organization)


@router.delete("/{organization_id}", response_model=MessageResponse)
async def delete_organization(
    organization_id: str,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member)
):
    """
    Delete an organization with all of its members, invitations and tickets (owner only).
    """
    await organization_service.delete_organization(db, organization_id, actor=member)
    return MessageResponse(message="Organization deleted successfully")


@router.post("/{organization_id}/activate", response_model=UserResponse)
async def activate_organization(
    organization_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """
    Make this organization the current user's active organization.
    """
    user = await organization_service.set_active_organization(db, current_user, organization_id)
    return UserResponse.model_validate(user)


@router.post("/{organization_id}/leave", response_model=MessageResponse)
async def leave_organization(
    organization_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    await membership_service.leave_organization(db, organization_id, current_user)
    return MessageResponse(message="You have left the organization")
