"""
Invitation Schemas
Pydantic models for invitation validation
"""
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, EmailStr

from helporbit.models.invitation import InvitationStatus
from helporbit.models.member import MemberRole
from helporbit.schemas.member import MemberResponse


class InvitationCreate(BaseModel):
    """Schema for creating an invitation"""
    email: EmailStr
    role: MemberRole = MemberRole.MEMBER
    resend: bool = False


class InvitationResponse(BaseModel):
    """Schema for invitation response"""
    id: str
    email: str
    role: MemberRole
    status: InvitationStatus
    organization_id: str
    inviter_id: str
    expires_at: datetime
    created_at: datetime
    updated_at: datetime
    is_expired: bool

    class Config:
        from_attributes = True


class InvitationListResponse(BaseModel):
    invitations: List[InvitationResponse]
    count: int


class InvitationAcceptResponse(BaseModel):
    invitation: InvitationResponse
    member: MemberResponse


class ErrorAction(BaseModel):
    label: str
    href: str


class InvitationError(BaseModel):
    """Reason an invitation cannot be accepted, with the next step for the user"""
    type: Literal["not-found", "expired", "already-processed", "wrong-user", "needs-login"]
    title: str
    message: str
    action: ErrorAction
    secondary_action: Optional[ErrorAction] = None


class InvitationView(BaseModel):
    """Everything the accept-invitation page needs in one payload"""
    invitation: Optional[InvitationResponse] = None
    organization_name: Optional[str] = None
    organization_slug: Optional[str] = None
    organization_logo: Optional[str] = None
    inviter_email: Optional[str] = None
    inviter_name: Optional[str] = None
    can_accept: bool = False
    error: Optional[InvitationError] = None
