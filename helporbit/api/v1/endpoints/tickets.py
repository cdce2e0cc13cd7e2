"""
Ticket API Endpoints
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from helporbit.db.session import get_db
from helporbit.models.member import Member
from helporbit.models.ticket import TicketPriority, TicketStatus
from helporbit.schemas.response import MessageResponse
from helporbit.schemas.ticket import (
    AttachmentCreate,
    AttachmentResponse,
    CommentCreate,
    CommentResponse,
    TicketAssign,
    TicketCreate,
    TicketListResponse,
    TicketResponse,
    TicketStats,
    TicketStatusChange,
    TicketUpdate,
)
from helporbit.api.dependencies import get_current_member, require_permission
from helporbit.services.ticket_service import ticket_service

router = APIRouter(prefix="/organizations/{organization_id}/tickets", tags=["Tickets"])


@router.get("", response_model=TicketListResponse)
async def list_tickets(
    organization_id: str,
    ticket_status: Optional[List[TicketStatus]] = Query(None, alias="status"),
    priority: Optional[List[TicketPriority]] = Query(None),
    assignee_id: Optional[str] = Query(None),
    requester_id: Optional[str] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_permission("ticket", "read"))
):
    """
    Tickets of the organization, newest first.
    """
    tickets, total = await ticket_service.list_tickets(
        db,
        organization_id,
        status=ticket_status,
        priority=priority,
        assignee_id=assignee_id,
        requester_id=requester_id,
        search=search,
        limit=limit,
        offset=offset,
    )
    return TicketListResponse(
        tickets=[TicketResponse.model_validate(ticket) for ticket in tickets],
        total=total,
    )


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    organization_id: str,
    ticket_data: TicketCreate,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member)
):
    ticket = await ticket_service.create_ticket(db, organization_id, member, ticket_data)
    return TicketResponse.model_validate(ticket)


@router.get("/stats", response_model=TicketStats)
async def get_ticket_stats(
    organization_id: str,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_permission("ticket", "read"))
):
    return await ticket_service.get_ticket_stats(db, organization_id)


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(
    organization_id: str,
    ticket_id: str,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_permission("ticket", "read"))
):
    ticket = await ticket_service.get_ticket(db, organization_id, ticket_id)
    return TicketResponse.model_validate(ticket)


@router.patch("/{ticket_id}", response_model=TicketResponse)
async def update_ticket(
    organization_id: str,
    ticket_id: str,
    ticket_data: TicketUpdate,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member)
):
    ticket = await ticket_service.update_ticket(db, organization_id, ticket_id, member, ticket_data)
    return TicketResponse.model_validate(ticket)


@router.delete("/{ticket_id}", response_model=MessageResponse)
async def delete_ticket(
    organization_id: str,
    ticket_id: str,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member)
):
    await ticket_service.delete_ticket(db, organization_id, ticket_id, member)
    return MessageResponse(message="Ticket deleted successfully")


@router.patch("/{ticket_id}/assign", response_model=TicketResponse)
async def assign_ticket(
    organization_id: str,
    ticket_id: str,
    assign_data: TicketAssign,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member)
):
    """
    Set or clear (``assignee_id: null``) the assignee.
    """
    ticket = await ticket_service.assign_ticket(db, organization_id, ticket_id, assign_data.assignee_id, member)
    return TicketResponse.model_validate(ticket)


@router.patch("/{ticket_id}/status", response_model=TicketResponse)
async def change_ticket_status(
    organization_id: str,
    ticket_id: str,
    status_data: TicketStatusChange,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member)
):
    ticket = await ticket_service.change_ticket_status(db, organization_id, ticket_id, status_data.status, member)
    return TicketResponse.model_validate(ticket)


@router.get("/{ticket_id}/comments", response_model=List[CommentResponse])
async def list_comments(
    organization_id: str,
    ticket_id: str,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member)
):
    comments = await ticket_service.list_comments(db, organization_id, ticket_id, member)
    return [CommentResponse.model_validate(comment) for comment in comments]


@router.post("/{ticket_id}/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
async def add_comment(
    organization_id: str,
    ticket_id: str,
    comment_data: CommentCreate,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member)
):
    comment = await ticket_service.add_comment(
        db, organization_id, ticket_id, member, comment_data.content, is_internal=comment_data.is_internal
    )
    return CommentResponse.model_validate(comment)


@router.get("/{ticket_id}/attachments", response_model=List[AttachmentResponse])
async def list_attachments(
    organization_id: str,
    ticket_id: str,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_permission("ticket", "read"))
):
    attachments = await ticket_service.list_attachments(db, organization_id, ticket_id)
    return [AttachmentResponse.model_validate(attachment) for attachment in attachments]


@router.post("/{ticket_id}/attachments", response_model=AttachmentResponse, status_code=status.HTTP_201_CREATED)
async def add_attachment(
    organization_id: str,
    ticket_id: str,
    attachment_data: AttachmentCreate,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member)
):
    """
    Record an attachment's metadata. The file itself lives in external storage.
    """
    attachment = await ticket_service.add_attachment(db, organization_id, ticket_id, member, attachment_data)
    return AttachmentResponse.model_validate(attachment)
