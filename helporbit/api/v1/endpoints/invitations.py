"""
Invitation API Endpoints
Organization-side management and invitee-side accept/reject
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Literal, Optional

from helporbit.db.session import get_db
from helporbit.core.exceptions import PermissionDeniedError
from helporbit.models.invitation import InvitationStatus
from helporbit.models.member import Member
from helporbit.models.user import User
from helporbit.schemas.invitation import (
    InvitationAcceptResponse,
    InvitationCreate,
    InvitationListResponse,
    InvitationResponse,
    InvitationView,
)
from helporbit.schemas.member import MemberResponse
from helporbit.api.dependencies import get_current_active_user, get_optional_user, require_permission
from helporbit.services.invitation_service import get_invitation_service, invitation_response
from helporbit.services.membership_service import get_membership_service

router = APIRouter(tags=["Invitations"])
invitation_service = get_invitation_service()
membership_service = get_membership_service()


# ==================== ORGANIZATION SIDE ====================

@router.post(
    "/organizations/{organization_id}/invitations",
    response_model=InvitationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_invitation(
    organization_id: str,
    invitation_data: InvitationCreate,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_permission("invitation", "create"))
):
    """
    Invite someone by email. An invitation email with the accept link is sent.
    """
    invitation = await invitation_service.create_invitation(
        db,
        organization_id=organization_id,
        email=invitation_data.email,
        role=invitation_data.role,
        inviter=member,
        resend=invitation_data.resend,
    )
    return invitation_response(invitation, invitation_service.now())


@router.get("/organizations/{organization_id}/invitations", response_model=InvitationListResponse)
async def list_invitations(
    organization_id: str,
    invitation_status: Optional[InvitationStatus] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    sort_direction: Literal["asc", "desc"] = Query("desc"),
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_permission("invitation", "create"))
):
    invitations, total = await invitation_service.list_invitations(
        db, organization_id, status=invitation_status, limit=limit, offset=offset, sort_direction=sort_direction
    )
    now = invitation_service.now()
    return InvitationListResponse(
        invitations=[invitation_response(invitation, now) for invitation in invitations],
        count=total,
    )


@router.post(
    "/organizations/{organization_id}/invitations/{invitation_id}/cancel",
    response_model=InvitationResponse,
)
async def cancel_invitation(
    organization_id: str,
    invitation_id: str,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_permission("invitation", "cancel"))
):
    invitation = await invitation_service.cancel_invitation(db, invitation_id, actor=member)
    return invitation_response(invitation, invitation_service.now())


@router.post(
    "/organizations/{organization_id}/invitations/{invitation_id}/resend",
    response_model=InvitationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def resend_invitation(
    organization_id: str,
    invitation_id: str,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_permission("invitation", "create"))
):
    """
    Send a fresh invitation for the same email and role. The original is left unchanged.
    """
    invitation = await invitation_service.resend_invitation(db, invitation_id, actor=member)
    return invitation_response(invitation, invitation_service.now())


# ==================== INVITEE SIDE ====================

@router.get("/invitations/me", response_model=InvitationListResponse)
async def list_my_invitations(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """
    Pending invitations addressed to the current user's email.
    """
    invitations = await invitation_service.list_user_invitations(db, current_user.email)
    now = invitation_service.now()
    return InvitationListResponse(
        invitations=[invitation_response(invitation, now) for invitation in invitations],
        count=len(invitations),
    )


@router.get("/invitations/{invitation_id}", response_model=InvitationResponse)
async def get_invitation(
    invitation_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """
    Visible to the invitee and to members of the inviting organization.
    """
    invitation = await invitation_service.get_invitation(db, invitation_id)
    if invitation.email.lower() != current_user.email.lower():
        if not await membership_service.get_member(db, invitation.organization_id, current_user.id):
            raise PermissionDeniedError("You don't have access to this invitation")
    return invitation_response(invitation, invitation_service.now())


@router.get("/invitations/{invitation_id}/view", response_model=InvitationView)
async def view_invitation(
    invitation_id: str,
    slug: Optional[str] = Query(None, description="Organization slug from the invitation link"),
    db: AsyncSession = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user)
):
    """
    Accept-invitation page data, including why the invitation cannot be
    accepted and the next step to offer.
    """
    return await invitation_service.build_invitation_view(db, invitation_id, current_user, organization_slug=slug)


@router.post("/invitations/{invitation_id}/accept", response_model=InvitationAcceptResponse)
async def accept_invitation(
    invitation_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    invitation, member = await invitation_service.accept_invitation(db, invitation_id, current_user)
    return InvitationAcceptResponse(
        invitation=invitation_response(invitation, invitation_service.now()),
        member=MemberResponse.model_validate(member),
    )


@router.post("/invitations/{invitation_id}/reject", response_model=InvitationResponse)
async def reject_invitation(
    invitation_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    invitation = await invitation_service.reject_invitation(db, invitation_id, current_user)
    return invitation_response(invitation, invitation_service.now())
