"""
Member Schemas
"""
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel

from helporbit.models.member import MemberRole
from helporbit.schemas.user import UserSummary


class MemberAdd(BaseModel):
    """Direct addition without the invitation flow"""
    user_id: str
    role: MemberRole = MemberRole.MEMBER


class MemberRoleUpdate(BaseModel):
    role: MemberRole


class MemberResponse(BaseModel):
    id: str
    user_id: str
    organization_id: str
    role: MemberRole
    created_at: datetime
    user: Optional[UserSummary] = None

    class Config:
        from_attributes = True


class MemberListResponse(BaseModel):
    members: List[MemberResponse]
    total: int


class ActiveMemberResponse(MemberResponse):
    """The caller's own membership with what it allows"""
    permissions: Dict[str, List[str]]
    assignable_roles: List[MemberRole]


class AssignableMember(BaseModel):
    """Ticket assignee option"""
    id: str
    user_id: str
    role: MemberRole
    name: str
    email: str
    image: Optional[str] = None
