"""
Member API Endpoints
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Literal, Optional

from helporbit.db.session import get_db
from helporbit.core.permissions import assignable_roles, permissions_for
from helporbit.models.member import Member, MemberRole
from helporbit.schemas.member import (
    ActiveMemberResponse,
    AssignableMember,
    MemberAdd,
    MemberListResponse,
    MemberResponse,
    MemberRoleUpdate,
)
from helporbit.api.dependencies import get_current_member, require_permission
from helporbit.services.membership_service import get_membership_service

router = APIRouter(prefix="/organizations/{organization_id}/members", tags=["Members"])
membership_service = get_membership_service()


@router.get("", response_model=MemberListResponse)
async def list_members(
    organization_id: str,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    sort_direction: Literal["asc", "desc"] = Query("asc"),
    role: Optional[List[MemberRole]] = Query(None),
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member)
):
    """
    Members of the organization with their user details, ordered by join date.
    """
    members, total = await membership_service.list_members(
        db, organization_id, limit=limit, offset=offset, sort_direction=sort_direction, roles=role
    )
    return MemberListResponse(
        members=[MemberResponse.model_validate(m) for m in members],
        total=total,
    )


@router.post("", response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
async def add_member(
    organization_id: str,
    member_data: MemberAdd,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member)
):
    """
    Add an existing user directly, without an invitation (owner or admin).
    """
    new_member = await membership_service.add_member(
        db, organization_id, member_data.user_id, member_data.role, actor=member
    )
    return MemberResponse.model_validate(new_member)


@router.get("/me", response_model=ActiveMemberResponse)
async def get_active_member(
    organization_id: str,
    member: Member = Depends(get_current_member)
):
    """
    The caller's membership, with the permissions and assignable roles it carries.
    """
    return ActiveMemberResponse(
        **MemberResponse.model_validate(member).model_dump(),
        permissions=permissions_for(member.role),
        assignable_roles=assignable_roles(member.role),
    )


@router.get("/assignable", response_model=List[AssignableMember])
async def list_assignable_members(
    organization_id: str,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_permission("ticket", "read"))
):
    """
    Members tickets can be assigned to. Cached per organization.
    """
    return await membership_service.list_assignable_members(db, organization_id)


@router.patch("/{member_id}/role", response_model=MemberResponse)
async def update_member_role(
    organization_id: str,
    member_id: str,
    role_data: MemberRoleUpdate,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member)
):
    updated = await membership_service.update_member_role(
        db, organization_id, member_id, role_data.role, actor=member
    )
    return MemberResponse.model_validate(updated)


@router.delete("/{member_id_or_email}", response_model=MemberResponse)
async def remove_member(
    organization_id: str,
    member_id_or_email: str,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member)
):
    """
    Remove a member by member id or email address. Returns the removed membership.
    """
    removed = await membership_service.remove_member(db, organization_id, member_id_or_email, actor=member)
    return MemberResponse.model_validate(removed)
