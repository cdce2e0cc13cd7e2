"""
Ticket Schemas
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from helporbit.models.member import MemberRole
from helporbit.models.ticket import TicketStatus, TicketPriority, TicketType, decode_tags
from helporbit.schemas.user import UserSummary


class TicketCreate(BaseModel):
    """Title and description are stored exactly as sent"""
    title: str = Field(..., min_length=3, max_length=255, description="Title must be at least 3 characters")
    description: str = Field(..., min_length=10, description="Description must be at least 10 characters")
    priority: TicketPriority = TicketPriority.MEDIUM
    type: TicketType = TicketType.GENERAL
    due_date: Optional[datetime] = None
    tags: Optional[List[str]] = None


class TicketUpdate(BaseModel):
    """Partial update; fields left out are unchanged"""
    title: Optional[str] = Field(None, min_length=3, max_length=255)
    description: Optional[str] = Field(None, min_length=10)
    status: Optional[TicketStatus] = None
    priority: Optional[TicketPriority] = None
    type: Optional[TicketType] = None
    due_date: Optional[datetime] = None
    tags: Optional[List[str]] = None


class TicketAssign(BaseModel):
    assignee_id: Optional[str] = None


class TicketStatusChange(BaseModel):
    status: TicketStatus


class TicketAssignee(BaseModel):
    id: str
    user_id: str
    role: MemberRole
    user: Optional[UserSummary] = None

    class Config:
        from_attributes = True


class TicketResponse(BaseModel):
    id: str
    title: str
    description: str
    status: TicketStatus
    priority: TicketPriority
    type: TicketType
    tags: List[str] = []
    organization_id: str
    requester_id: str
    assignee_id: Optional[str] = None
    due_date: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    requester: Optional[UserSummary] = None
    assignee: Optional[TicketAssignee] = None

    class Config:
        from_attributes = True

    @field_validator("tags", mode="before")
    @classmethod
    def parse_tags(cls, value):
        if value is None or isinstance(value, str):
            return decode_tags(value)
        return value


class TicketListResponse(BaseModel):
    tickets: List[TicketResponse]
    total: int


class TicketStats(BaseModel):
    open: int
    in_progress: int
    resolved_today: int
    urgent: int
    total: int


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1)
    is_internal: bool = False


class CommentResponse(BaseModel):
    id: str
    ticket_id: str
    author_id: str
    content: str
    is_internal: bool
    created_at: datetime
    author: Optional[UserSummary] = None

    class Config:
        from_attributes = True


class AttachmentResponse(BaseModel):
    id: str
    ticket_id: Optional[str] = None
    comment_id: Optional[str] = None
    filename: str
    url: str
    size: int
    content_type: str
    uploaded_by: str
    uploaded_at: datetime

    class Config:
        from_attributes = True


class RecentTicket(BaseModel):
    id: str
    title: str
    status: TicketStatus
    priority: TicketPriority
    type: TicketType
    customer: str
    assignee_id: Optional[str] = None
    created_at: datetime
    tags: List[str]


class DashboardResponse(BaseModel):
    stats: TicketStats
    recent_tickets: List[RecentTicket]


class AttachmentCreate(BaseModel):
    """Metadata of a file already uploaded to external storage"""
    filename: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1)
    size: int = Field(..., ge=0)
    content_type: str = Field(..., min_length=1, max_length=255)
    comment_id: Optional[str] = None
